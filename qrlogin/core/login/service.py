"""
登录核心服务
"""
from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Dict, Optional

from qrlogin.providers.logger import get_logger

from .enricher import ProfileEnricher
from .events import Listener, SessionEvents
from .machine import LoginStateMachine
from .models import LoginSession, LoginState, ProfileData, SessionRecord, SessionSnapshot
from .poller import StatusPoller
from .storage import SessionStore

if TYPE_CHECKING:
    from qrlogin.core.client.netease_client import AuthGateway

logger = get_logger()


class LoginService:
    """
    扫码登录服务（对外门面）

    由组合根显式构建并传递给需要登录态的调用方；存储中的登录记录是“是否已登录”的唯一依据。
    """

    def __init__(
        self,
        gateway: "AuthGateway",
        store: SessionStore,
        poller: Optional[StatusPoller] = None,
        enricher: Optional[ProfileEnricher] = None,
    ):
        self.gateway = gateway
        self.store = store
        self.poller = poller or StatusPoller()
        self.enricher = enricher or ProfileEnricher(gateway)
        self.events = SessionEvents()
        self._record: Optional[SessionRecord] = None
        # 串行化对登录记录的写入与清除
        self._store_lock = asyncio.Lock()
        self._machine = LoginStateMachine(
            gateway=gateway,
            poller=self.poller,
            enricher=self.enricher,
            notify=self._emit,
            on_confirmed=self._persist_record,
        )

    # === 基础能力 ===

    @property
    def session(self) -> LoginSession:
        return self._machine.session

    def subscribe(self, listener: Listener):
        """订阅会话变更通知，返回取消订阅函数"""
        return self.events.subscribe(listener)

    def snapshot(self) -> SessionSnapshot:
        record = self._record
        return SessionSnapshot(
            is_logged_in=record is not None,
            state=self.session.state,
            profile=record.profile if record else None,
            message=self.session.message,
        )

    async def _emit(self) -> None:
        await self.events.emit(self.snapshot())

    async def _persist_record(self, record: SessionRecord, generation: int) -> bool:
        """
        确认登录后写穿到存储

        写入期间尝试被取消或退出登录时，恢复写入前的记录并返回 False。
        """
        async with self._store_lock:
            if not self._machine.is_current(generation):
                logger.info("[登录管理] 保存前尝试已作废，丢弃本次凭证")
                return False
            previous = await self.store.load()
            await self.store.save(record)
            if not self._machine.is_current(generation):
                logger.info("[登录管理] 保存期间尝试已作废，回滚登录记录")
                if previous is None:
                    await self.store.clear()
                else:
                    await self.store.save(previous)
                return False
            self._record = record
        nickname = record.profile.nickname if record.profile else "用户"
        logger.info(f"[登录管理] 登录成功，欢迎回来，{nickname or '用户'}！")
        await self._emit()
        return True

    async def restore(self) -> bool:
        """启动时从存储恢复登录记录，记录损坏时按未登录处理"""
        self._record = await self.store.load()
        api_base = await self.store.load_api_base()
        if api_base:
            self.gateway.set_base_url(api_base)
        logger.info(f"[登录管理] 恢复登录状态: is_logged_in={self._record is not None}")
        return self._record is not None

    # === 登录流程 ===

    async def begin_login(self) -> LoginSession:
        """发起扫码登录，返回当前会话（包含二维码图片）"""
        return await self._machine.begin()

    async def cancel(self) -> None:
        """取消进行中的扫码登录"""
        try:
            await self._machine.cancel()
        except Exception as exc:
            logger.warning(f"[登录管理] 取消登录时出现异常: {exc}")

    async def logout(self) -> None:
        """退出登录：停止轮询、重置会话、清除存储。不会抛出异常。"""
        self._record = None
        # 先作废进行中的尝试，正在保存的确认结果会自行回滚
        try:
            await self._machine.reset()
        except Exception as exc:
            logger.warning(f"[登录管理] 重置登录会话失败: {exc}")
        async with self._store_lock:
            try:
                await self.store.clear()
            except Exception as exc:
                logger.error(f"[登录管理] 清除登录记录失败: {exc}")
            self._record = None
        logger.info("[登录管理] 已退出登录")

    async def wait_until_settled(self, timeout: Optional[float] = None) -> LoginSession:
        return await self._machine.wait_settled(timeout)

    # === 状态查询 ===

    async def check_login(self) -> bool:
        self._record = await self.store.load()
        return self._record is not None

    async def get_credential(self) -> Optional[str]:
        self._record = await self.store.load()
        return self._record.credential if self._record else None

    async def get_user_info(self) -> Optional[ProfileData]:
        """获取用户资料；记录中缺少资料时重新补充一次"""
        record = await self.store.load()
        self._record = record
        if record is None:
            return None
        if record.profile is not None:
            return record.profile

        profile = await self.enricher.enrich(record.credential)
        if profile is None:
            return None
        async with self._store_lock:
            current = await self.store.load()
            if current is None or current.credential != record.credential:
                # 补充期间已退出或重新登录
                return current.profile if current else None
            updated = SessionRecord(credential=record.credential, profile=profile)
            try:
                await self.store.save(updated)
            except Exception as exc:
                logger.warning(f"[登录管理] 保存补充的用户资料失败: {exc}")
                return profile
            self._record = updated
        await self._emit()
        return profile

    def get_status(self) -> Dict[str, Any]:
        """供 UI 使用的状态快照"""
        data = self.snapshot().to_public_dict()
        data["session"] = self.session.to_public_dict()
        return data

    # === 携带凭证的请求 ===

    async def request_with_credential(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """已登录时附带 cookie 参数，未登录时匿名请求"""
        query = dict(params or {})
        credential = await self.get_credential()
        if credential:
            query["cookie"] = credential
        return await self.gateway.request(endpoint, query)

    # === API 地址 ===

    async def set_api_base(self, api_base: str) -> str:
        api_base = (api_base or "").strip().rstrip("/")
        if not api_base:
            raise ValueError("请输入API地址")
        await self.store.save_api_base(api_base)
        self.gateway.set_base_url(api_base)
        return api_base

    async def reset_api_base(self, default_api_base: str) -> str:
        await self.store.clear_api_base()
        self.gateway.set_base_url(default_api_base)
        return default_api_base

    async def close(self) -> None:
        self.poller.stop()
        await self.gateway.close()


__all__ = ["LoginService"]
