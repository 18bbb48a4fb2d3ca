# -*- coding: utf-8 -*-
"""登录服务端点 - 仅负责路由注册，将业务逻辑委托给核心登录服务"""

from __future__ import annotations

from pydantic import ValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from qrlogin.api.scheme import error_codes
from qrlogin.api.scheme.request.login_scheme import (
    ApiBaseRequest,
    ApiBaseResponse,
    LoginStatusResponse,
    LogoutResponse,
    UserInfoResponse,
    error_payload,
)
from qrlogin.core.login import LoginService, LoginServiceError
from qrlogin.providers.logger import get_logger

logger = get_logger()


def _service(request: Request) -> LoginService:
    return request.app.state.login_service


def _status_response(service: LoginService) -> JSONResponse:
    response_model = LoginStatusResponse.model_validate(service.get_status())
    return JSONResponse(content=response_model.model_dump())


async def login_start(request: Request):
    service = _service(request)
    try:
        await service.begin_login()
        return _status_response(service)
    except LoginServiceError as exc:
        return JSONResponse(content=error_payload(exc.errmsg, exc.errcode), status_code=502)
    except ValidationError as exc:
        logger.error(f"启动登录响应验证失败: {exc}")
        return JSONResponse(content=error_payload("响应数据格式错误"), status_code=500)
    except Exception as exc:
        logger.error(f"启动登录失败: {exc}")
        return JSONResponse(content=error_payload("启动登录失败"), status_code=500)


async def login_status(request: Request):
    service = _service(request)
    try:
        await service.check_login()
        return _status_response(service)
    except ValidationError as exc:
        logger.error(f"登录状态响应验证失败: {exc}")
        return JSONResponse(content=error_payload("响应数据格式错误"), status_code=500)


async def login_cancel(request: Request):
    service = _service(request)
    await service.cancel()
    return _status_response(service)


async def login_logout(request: Request):
    service = _service(request)
    await service.logout()
    response_model = LogoutResponse(status="success", message="已退出登录")
    return JSONResponse(content=response_model.model_dump())


async def login_user(request: Request):
    service = _service(request)
    profile = await service.get_user_info()
    response_model = UserInfoResponse.model_validate({
        "is_logged_in": await service.check_login(),
        "profile": profile.to_public_dict() if profile else None,
    })
    return JSONResponse(content=response_model.model_dump())


async def login_api_base(request: Request):
    service = _service(request)
    if request.method == "GET":
        return JSONResponse(content=ApiBaseResponse(api_base=service.gateway.base_url).model_dump())

    try:
        payload = await request.json()
    except Exception:
        payload = {}
    try:
        request_model = ApiBaseRequest.model_validate(payload)
    except ValidationError as exc:
        return JSONResponse(content=error_payload(exc.errors(include_url=False, include_context=False),
                                                  error_codes.PARAM_ERROR[0]),
                            status_code=400)

    if request_model.api_base:
        api_base = await service.set_api_base(request_model.api_base)
    else:
        api_base = await service.reset_api_base(request.app.state.settings.gateway.api_base)
    return JSONResponse(content=ApiBaseResponse(api_base=api_base).model_dump())


routes = [
    Route("/api/login/start", login_start, methods=["POST"]),
    Route("/api/login/status", login_status, methods=["GET"]),
    Route("/api/login/cancel", login_cancel, methods=["POST"]),
    Route("/api/login/logout", login_logout, methods=["POST"]),
    Route("/api/login/user", login_user, methods=["GET"]),
    Route("/api/login/api-base", login_api_base, methods=["GET", "POST"]),
]
