# -*- coding: utf-8 -*-
import asyncio
from typing import Any, Dict, List, Optional

import pytest

from qrlogin.core.login.enricher import ProfileEnricher
from qrlogin.core.login.poller import StatusPoller
from qrlogin.core.login.service import LoginService
from qrlogin.core.login.storage import MemorySessionStore, SessionStore

ACCOUNT = {
    "code": 200,
    "account": {"id": 42, "userName": "1_138****0000"},
    "profile": {
        "userId": 42,
        "nickname": "听歌的人",
        "avatarUrl": "https://p1.music.126.net/avatar.jpg",
        "follows": 3,
        "followeds": 5,
    },
}

DETAIL = {
    "code": 200,
    "level": 8,
    "profile": {"userId": 42, "nickname": "听歌的人", "follows": 3, "followeds": 7,
                "playlistCount": 12, "eventCount": 4},
}


def status(code: int, **extra) -> Dict[str, Any]:
    return {"code": code, **extra}


class ScriptedGateway:
    """按脚本返回扫码状态的假网关；脚本项可以是响应 dict 或要抛出的异常，用完后重复最后一项"""

    def __init__(self, keys=("K1", "K2", "K3"), scripts: Optional[Dict[str, List[Any]]] = None,
                 account: Any = ACCOUNT, detail: Any = DETAIL):
        self.keys = list(keys)
        self.scripts = scripts or {}
        self.account = account
        self.detail = detail
        self.issue_error: Optional[Exception] = None
        self.render_error: Optional[Exception] = None
        self.check_calls: List[str] = []
        self.account_calls = 0
        self.requests: List[tuple] = []
        self.gates: Dict[str, asyncio.Event] = {}
        self.account_gate: Optional[asyncio.Event] = None
        self.issue_gate: Optional[asyncio.Event] = None
        self.issue_calls = 0
        self._base_url = "https://api.example.com"
        self.closed = False

    @property
    def base_url(self) -> str:
        return self._base_url

    def set_base_url(self, base_url: str) -> None:
        self._base_url = base_url

    async def issue_key(self) -> str:
        self.issue_calls += 1
        if self.issue_gate is not None:
            await self.issue_gate.wait()
        await asyncio.sleep(0)
        if self.issue_error is not None:
            raise self.issue_error
        return self.keys.pop(0)

    async def render_qr(self, key: str) -> str:
        await asyncio.sleep(0)
        if self.render_error is not None:
            raise self.render_error
        return f"data:image/png;base64,{key}"

    async def check_status(self, key: str) -> Dict[str, Any]:
        self.check_calls.append(key)
        gate = self.gates.get(key)
        if gate is not None:
            await gate.wait()
        script = self.scripts.setdefault(key, [status(801)])
        item = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(item, BaseException):
            raise item
        return item

    async def fetch_account(self, credential: str) -> Dict[str, Any]:
        self.account_calls += 1
        if self.account_gate is not None:
            await self.account_gate.wait()
        if isinstance(self.account, BaseException):
            raise self.account
        return self.account

    async def fetch_detail(self, credential: str, user_id: Any) -> Dict[str, Any]:
        if isinstance(self.detail, BaseException):
            raise self.detail
        return self.detail

    async def request(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        self.requests.append((endpoint, dict(params or {})))
        return {"code": 200, "endpoint": endpoint}

    async def close(self) -> None:
        self.closed = True


def build_service(gateway: ScriptedGateway, store: Optional[SessionStore] = None,
                  interval: float = 0, max_failures: int = 3, fetch_detail: bool = True) -> LoginService:
    return LoginService(
        gateway=gateway,
        store=store if store is not None else MemorySessionStore(),
        poller=StatusPoller(interval=interval, max_failures=max_failures),
        enricher=ProfileEnricher(gateway, fetch_detail=fetch_detail),
    )


@pytest.fixture
def gateway():
    return ScriptedGateway()


class GatedStore(MemorySessionStore):
    """内存存储；设置 gate 后写入会阻塞到 gate 放行，设置 write_error 后写入失败"""

    def __init__(self):
        super().__init__()
        self.gate: Optional[asyncio.Event] = None
        self.write_started: Optional[asyncio.Event] = None
        self.write_error: Optional[Exception] = None

    async def _write(self, key: str, value: str) -> None:
        if self.write_error is not None:
            raise self.write_error
        if self.gate is not None:
            if self.write_started is not None:
                self.write_started.set()
            await self.gate.wait()
        await super()._write(key, value)
