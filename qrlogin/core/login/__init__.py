# -*- coding: utf-8 -*-
"""
登录核心模块

提供扫码登录状态机、轮询器、会话存储以及统一的登录服务入口。
"""

from .exceptions import (
    GatewayRejected,
    GatewayUnavailable,
    LoginServiceError,
    MalformedResponse,
    SessionExpired,
    StorageCorrupt,
)
from .models import LoginSession, LoginState, ProfileData, SessionRecord, SessionSnapshot
from .service import LoginService

__all__ = [
    "LoginServiceError",
    "GatewayUnavailable",
    "GatewayRejected",
    "SessionExpired",
    "MalformedResponse",
    "StorageCorrupt",
    "LoginService",
    "LoginSession",
    "LoginState",
    "ProfileData",
    "SessionRecord",
    "SessionSnapshot",
]
