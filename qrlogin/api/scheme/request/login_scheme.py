# -*- coding: utf-8 -*-
"""
登录 API 请求/响应模型
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, field_validator


class ApiBaseRequest(BaseModel):
    """更新 API 地址请求；api_base 为空表示恢复默认地址"""

    api_base: str = ""

    model_config = {"extra": "ignore"}

    @field_validator("api_base")
    @classmethod
    def normalize_api_base(cls, value: str) -> str:
        value = (value or "").strip().rstrip("/")
        if value and not value.startswith(("http://", "https://")):
            raise ValueError("API地址必须以 http:// 或 https:// 开头")
        return value


class SessionErrorInfo(BaseModel):
    kind: str
    errcode: int
    errmsg: str


class SessionInfo(BaseModel):
    state: str
    qr_key: Optional[str] = None
    qr_image: Optional[str] = None
    issued_at: float = 0.0
    elapsed: float = 0.0
    message: str = ""
    error: Optional[SessionErrorInfo] = None


class ProfileInfo(BaseModel):
    user_id: Optional[int] = None
    nickname: str = ""
    avatar_url: str = ""
    follows: int = 0
    followeds: int = 0
    playlist_count: int = 0
    event_count: int = 0


class LoginStatusResponse(BaseModel):
    is_logged_in: bool
    state: str
    message: str = ""
    profile: Optional[ProfileInfo] = None
    session: SessionInfo


class UserInfoResponse(BaseModel):
    is_logged_in: bool
    profile: Optional[ProfileInfo] = None


class LogoutResponse(BaseModel):
    status: str
    message: str = ""


class ApiBaseResponse(BaseModel):
    api_base: str


def error_payload(detail: Any, errcode: Optional[int] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"detail": detail}
    if errcode is not None:
        payload["errcode"] = errcode
    return payload
