# -*- coding: utf-8 -*-
"""HTTP 服务模块 - 把登录服务挂到 Starlette 应用上，供前端 UI 调用。"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware

from qrlogin.api.endpoints import routes
from qrlogin.config.settings import GlobalSettings, global_settings
from qrlogin.core.login import LoginService
from qrlogin.core.login.bootstrap import create_login_service
from qrlogin.providers.cache.redis_cache import RedisInstanceManager
from qrlogin.providers.logger import get_logger, init_logger


def create_app(settings: Optional[GlobalSettings] = None,
               service: Optional[LoginService] = None) -> Starlette:
    """创建 ASGI 应用；service 为空时按配置装配"""
    settings = settings or global_settings

    init_logger(
        name=settings.app.name,
        level=settings.logger.level,
        log_file=settings.logger.log_file,
        enable_file=settings.logger.enable_file,
        enable_console=settings.logger.enable_console,
        max_file_size=settings.logger.max_file_size,
        retention_days=settings.logger.retention_days,
    )
    logger = get_logger()
    login_service = service or create_login_service(settings)

    @asynccontextmanager
    async def lifespan(app: Starlette):
        await login_service.restore()
        logger.info(f"✅ {settings.app.name} 登录服务已就绪")
        try:
            yield
        finally:
            await login_service.close()
            await RedisInstanceManager.close_all()
            logger.info("✅ 登录服务已关闭")

    app = Starlette(
        debug=settings.app.debug,
        routes=routes,
        middleware=[
            Middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"]),
        ],
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.login_service = login_service
    return app
