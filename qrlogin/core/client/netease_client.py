# -*- coding: utf-8 -*-
"""
网易云音乐 API HTTP 客户端

只覆盖扫码登录流程需要的接口：获取 key、生成二维码、检查扫码状态、账号与用户详情，
以及一个供其他模块携带登录凭证发请求的通用 request。
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx

from qrlogin.core.login.exceptions import GatewayRejected, GatewayUnavailable, MalformedResponse
from qrlogin.providers.logger import get_logger

DEFAULT_API_BASE = "https://neteaseapi-enhanced.vercel.app"


class AuthGateway(Protocol):
    """登录状态机依赖的远端网关接口"""

    @property
    def base_url(self) -> str: ...

    async def issue_key(self) -> str: ...

    async def render_qr(self, key: str) -> str: ...

    async def check_status(self, key: str) -> Dict[str, Any]: ...

    async def fetch_account(self, credential: str) -> Dict[str, Any]: ...

    async def fetch_detail(self, credential: str, user_id: Any) -> Dict[str, Any]: ...

    async def request(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]: ...

    def set_base_url(self, base_url: str) -> None: ...

    async def close(self) -> None: ...


@dataclass
class NeteaseClientConfig:
    """客户端配置"""
    base_url: str = DEFAULT_API_BASE
    timeout: float = 15.0
    random_cn_ip: bool = True


class NeteaseClient:
    """
    网易云音乐 API 客户端

    所有请求均为 GET，自动追加 timestamp（防缓存）和 randomCNIP 参数。
    传输层错误统一转换为 GatewayUnavailable，响应体无法解析转换为 MalformedResponse。
    """

    def __init__(self, config: Optional[NeteaseClientConfig] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config or NeteaseClientConfig()
        self.logger = get_logger()
        self.client = httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout,
            follow_redirects=True,
            transport=transport,
        )

    async def close(self) -> None:
        """关闭客户端"""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def base_url(self) -> str:
        return str(self.client.base_url).rstrip("/")

    def set_base_url(self, base_url: str) -> None:
        """切换 API 地址，后续请求立即生效"""
        self.client.base_url = base_url.rstrip("/")
        self.logger.info(f"[网关] API 地址已切换为 {self.base_url}")

    def build_params(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """拼装查询参数，None 值会被丢弃"""
        query: Dict[str, Any] = {"timestamp": int(time.time() * 1000)}
        if self.config.random_cn_ip:
            query["randomCNIP"] = "true"
        for key, value in (params or {}).items():
            if value is None:
                continue
            if isinstance(value, bool):
                value = "true" if value else "false"
            query[key] = value
        return query

    async def request(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """发起 GET 请求并返回 JSON 对象"""
        try:
            response = await self.client.get(endpoint, params=self.build_params(params))
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise GatewayUnavailable(f"{endpoint} HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise GatewayUnavailable(f"{endpoint} {type(exc).__name__}: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise MalformedResponse(f"{endpoint} 返回的不是合法 JSON") from exc
        if not isinstance(data, dict):
            raise MalformedResponse(f"{endpoint} 返回的 JSON 不是对象")
        return data

    @staticmethod
    def _ensure_ok(endpoint: str, data: Dict[str, Any], action: str) -> None:
        code = data.get("code")
        if code != 200:
            message = data.get("message") or data.get("msg") or f"{action}失败"
            raise GatewayRejected(f"{endpoint} code={code} {message}", code=code)

    async def issue_key(self) -> str:
        """获取二维码 key"""
        endpoint = "/login/qr/key"
        data = await self.request(endpoint)
        self._ensure_ok(endpoint, data, "获取二维码key")
        unikey = (data.get("data") or {}).get("unikey")
        if not unikey:
            raise MalformedResponse(f"{endpoint} 响应缺少 data.unikey")
        return str(unikey)

    async def render_qr(self, key: str) -> str:
        """根据 key 生成二维码图片，返回 data URI"""
        endpoint = "/login/qr/create"
        data = await self.request(endpoint, {"key": key, "qrimg": True})
        self._ensure_ok(endpoint, data, "生成二维码")
        qrimg = (data.get("data") or {}).get("qrimg")
        if not qrimg:
            raise MalformedResponse(f"{endpoint} 响应缺少 data.qrimg")
        return str(qrimg)

    async def check_status(self, key: str) -> Dict[str, Any]:
        """检查扫码状态，返回原始响应（code 为 800/801/802/803 或其他）"""
        endpoint = "/login/qr/check"
        data = await self.request(endpoint, {"key": key})
        if "code" not in data:
            raise MalformedResponse(f"{endpoint} 响应缺少 code")
        return data

    async def fetch_account(self, credential: str) -> Dict[str, Any]:
        return await self.request("/user/account", {"cookie": credential})

    async def fetch_detail(self, credential: str, user_id: Any) -> Dict[str, Any]:
        return await self.request("/user/detail", {"uid": user_id, "cookie": credential})
