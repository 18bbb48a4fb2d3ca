# -*- coding: utf-8 -*-
"""组合根：按配置构建登录服务的各个部件"""
from __future__ import annotations

from typing import Optional

import httpx

from qrlogin.config.settings import GlobalSettings, StorageBackend, global_settings
from qrlogin.core.client.netease_client import NeteaseClient, NeteaseClientConfig
from qrlogin.providers.cache.redis_cache import RedisInstanceManager

from .enricher import ProfileEnricher
from .poller import StatusPoller
from .service import LoginService
from .storage import FileSessionStore, MemorySessionStore, RedisSessionStore, SessionStore


def create_session_store(settings: GlobalSettings) -> SessionStore:
    cfg = settings.storage
    if cfg.backend == StorageBackend.REDIS:
        return RedisSessionStore(
            RedisInstanceManager.from_config(settings.redis),
            session_key=cfg.session_key,
            api_base_key=cfg.api_base_key,
            ttl=cfg.ttl,
        )
    if cfg.backend == StorageBackend.MEMORY:
        return MemorySessionStore(session_key=cfg.session_key, api_base_key=cfg.api_base_key)
    return FileSessionStore(cfg.data_dir, session_key=cfg.session_key, api_base_key=cfg.api_base_key)


def create_login_service(
    settings: Optional[GlobalSettings] = None,
    store: Optional[SessionStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> LoginService:
    """按配置装配 LoginService；调用方负责随后 await service.restore()"""
    settings = settings or global_settings
    gateway = NeteaseClient(
        NeteaseClientConfig(
            base_url=settings.gateway.api_base,
            timeout=settings.gateway.timeout,
            random_cn_ip=settings.gateway.random_cn_ip,
        ),
        transport=transport,
    )
    return LoginService(
        gateway=gateway,
        store=store or create_session_store(settings),
        poller=StatusPoller(
            interval=settings.login.poll_interval,
            max_failures=settings.login.max_tick_failures,
        ),
        enricher=ProfileEnricher(gateway, fetch_detail=settings.login.fetch_detail),
    )
