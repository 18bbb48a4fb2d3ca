# -*- coding: utf-8 -*-
"""
登录服务相关数据模型
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from .exceptions import LoginServiceError, SessionExpired


class LoginState(str, Enum):
    """扫码登录会话状态"""

    IDLE = "idle"
    KEY_ISSUED = "key_issued"
    QR_READY = "qr_ready"
    POLLING = "polling"
    SCANNED = "scanned"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"
    FAILED = "failed"


# 一次扫码尝试仍在进行中的状态
ACTIVE_STATES = frozenset({
    LoginState.KEY_ISSUED,
    LoginState.QR_READY,
    LoginState.POLLING,
    LoginState.SCANNED,
})

# 轮询结果只在这两个状态下生效
POLLING_STATES = frozenset({LoginState.POLLING, LoginState.SCANNED})


class QrStatus:
    """网关扫码状态码"""

    EXPIRED = 800
    WAITING = 801
    SCANNED = 802
    CONFIRMED = 803


@dataclass
class LoginSession:
    """扫码登录会话实体（仅内存）"""

    state: LoginState = LoginState.IDLE
    qr_key: Optional[str] = None
    qr_image: Optional[str] = None
    issued_at: float = 0.0
    message: str = ""
    last_error: Optional[LoginServiceError] = None
    updated_at: float = field(default_factory=time.time)

    def touch(self):
        self.updated_at = time.time()

    def to_public_dict(self) -> Dict[str, Any]:
        """转换为前端可见的会话信息"""
        elapsed = 0.0
        if self.issued_at:
            elapsed = max(0.0, time.time() - self.issued_at)
        error = None
        failure = self.last_error
        if failure is None and self.state == LoginState.EXPIRED:
            failure = SessionExpired()
        if failure is not None:
            error = {"kind": failure.kind, **failure.to_dict()}
        return {
            "state": self.state.value,
            "qr_key": self.qr_key,
            "qr_image": self.qr_image,
            "issued_at": self.issued_at,
            "elapsed": elapsed,
            "message": self.message,
            "error": error,
        }


@dataclass
class ProfileData:
    """账号资料（登录成功后补充）"""

    user_id: Optional[int] = None
    nickname: str = ""
    avatar_url: str = ""
    follows: int = 0
    followeds: int = 0
    playlist_count: int = 0
    event_count: int = 0
    account: Dict[str, Any] = field(default_factory=dict)
    detail: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_gateway(cls, profile: Dict[str, Any], account: Optional[Dict[str, Any]] = None,
                     detail: Optional[Dict[str, Any]] = None) -> "ProfileData":
        """从网关返回的 camelCase profile 构建"""
        return cls(
            user_id=profile.get("userId"),
            nickname=profile.get("nickname") or "",
            avatar_url=profile.get("avatarUrl") or "",
            follows=int(profile.get("follows") or 0),
            followeds=int(profile.get("followeds") or 0),
            playlist_count=int(profile.get("playlistCount") or 0),
            event_count=int(profile.get("eventCount") or 0),
            account=account or {},
            detail=detail or {},
        )

    def to_storage_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "nickname": self.nickname,
            "avatar_url": self.avatar_url,
            "follows": self.follows,
            "followeds": self.followeds,
            "playlist_count": self.playlist_count,
            "event_count": self.event_count,
            "account": self.account,
            "detail": self.detail,
        }

    @classmethod
    def from_storage_dict(cls, data: Dict[str, Any]) -> "ProfileData":
        return cls(
            user_id=data.get("user_id"),
            nickname=data.get("nickname", ""),
            avatar_url=data.get("avatar_url", ""),
            follows=data.get("follows", 0),
            followeds=data.get("followeds", 0),
            playlist_count=data.get("playlist_count", 0),
            event_count=data.get("event_count", 0),
            account=data.get("account") or {},
            detail=data.get("detail") or {},
        )

    def to_public_dict(self) -> Dict[str, Any]:
        """不含原始 account/detail 的精简视图"""
        data = self.to_storage_dict()
        data.pop("account")
        data.pop("detail")
        return data


@dataclass
class SessionRecord:
    """持久化的登录结果"""

    credential: str
    profile: Optional[ProfileData] = None
    saved_at: float = field(default_factory=time.time)

    def to_storage_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "credential": self.credential,
            "saved_at": self.saved_at,
        }
        if self.profile is not None:
            data["profile"] = self.profile.to_storage_dict()
        return data

    @classmethod
    def from_storage_dict(cls, data: Dict[str, Any]) -> "SessionRecord":
        credential = data["credential"]
        if not isinstance(credential, str) or not credential:
            raise ValueError("credential 缺失或类型错误")
        profile_data = data.get("profile")
        if profile_data is not None and not isinstance(profile_data, dict):
            raise ValueError("profile 类型错误")
        return cls(
            credential=credential,
            profile=ProfileData.from_storage_dict(profile_data) if profile_data else None,
            saved_at=data.get("saved_at", 0.0),
        )


@dataclass(frozen=True)
class SessionSnapshot:
    """会话变更通知的载荷"""

    is_logged_in: bool
    state: LoginState
    profile: Optional[ProfileData] = None
    message: str = ""

    def to_public_dict(self) -> Dict[str, Any]:
        return {
            "is_logged_in": self.is_logged_in,
            "state": self.state.value,
            "profile": self.profile.to_public_dict() if self.profile else None,
            "message": self.message,
        }
