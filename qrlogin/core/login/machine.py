# -*- coding: utf-8 -*-
"""
扫码登录状态机

idle -> key_issued -> qr_ready -> polling <-> scanned -> confirmed / expired / failed

每次 begin()/cancel()/reset() 都会递增 generation，所有在挂起点之后恢复的分支
都先比对 generation，过期的分支不再修改会话。
"""
from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional

from qrlogin.api.scheme import error_codes
from qrlogin.providers.logger import get_logger, mask_credential

from .enricher import ProfileEnricher
from .exceptions import GatewayUnavailable, LoginServiceError, MalformedResponse
from .models import ACTIVE_STATES, POLLING_STATES, LoginSession, LoginState, QrStatus, SessionRecord
from .poller import StatusPoller

if TYPE_CHECKING:
    from qrlogin.core.client.netease_client import AuthGateway

logger = get_logger()

HINT_FETCHING_QR = "获取二维码中..."
HINT_SCAN = "请使用网易云音乐APP扫码"
HINT_WAITING = "等待扫码..."
HINT_SCANNED = "已扫码，请在APP中确认登录"
HINT_CONFIRMED = "登录成功！"
HINT_EXPIRED = "二维码已过期，请刷新重试"
HINT_TICK_FAILED = "状态检查失败，请重试"


def as_login_error(exc: BaseException) -> LoginServiceError:
    """非登录异常按传输失败处理"""
    if isinstance(exc, LoginServiceError):
        return exc
    return GatewayUnavailable(f"{type(exc).__name__}: {exc}")


class LoginStateMachine:
    """驱动 获取key -> 生成二维码 -> 轮询 -> 落地 的完整流程"""

    def __init__(
        self,
        gateway: "AuthGateway",
        poller: StatusPoller,
        enricher: ProfileEnricher,
        notify: Callable[[], Awaitable[None]],
        on_confirmed: Callable[[SessionRecord, int], Awaitable[bool]],
    ):
        self.gateway = gateway
        self.poller = poller
        self.enricher = enricher
        self._notify = notify
        self._on_confirmed = on_confirmed
        self._session = LoginSession()
        self._generation = 0
        self._settled = asyncio.Event()
        self._settled.set()

    @property
    def session(self) -> LoginSession:
        return self._session

    @property
    def generation(self) -> int:
        return self._generation

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def _update(self, state: LoginState, message: Optional[str] = None) -> None:
        """切换状态/提示语，有变化时通知订阅者"""
        session = self._session
        changed = session.state != state or (message is not None and message != session.message)
        if session.state != state:
            logger.info(f"[登录管理] 登录状态 {session.state.value} -> {state.value}")
        session.state = state
        if message is not None:
            session.message = message
        session.touch()
        if changed:
            await self._notify()

    def _invalidate(self) -> LoginState:
        """作废当前尝试：停止轮询、丢弃 key、回到 idle"""
        previous = self._session.state
        self._generation += 1
        self.poller.stop()
        self._session = LoginSession()
        self._settled.set()
        return previous

    # === 流程入口 ===

    async def begin(self) -> LoginSession:
        """发起一次扫码登录；已有进行中的尝试会被取消后重新开始"""
        previous = self._invalidate()
        if previous in ACTIVE_STATES:
            logger.info(f"[登录管理] 已取消进行中的登录尝试 (state={previous.value})，重新开始")
        generation = self._generation
        self._settled.clear()
        await self._update(LoginState.IDLE, HINT_FETCHING_QR)

        try:
            key = await self.gateway.issue_key()
        except Exception as exc:
            return await self._fail(generation, as_login_error(exc), surface=True)
        if not self.is_current(generation):
            logger.debug("[登录管理] 获取 key 完成时尝试已被取代，丢弃")
            return self._session

        self._session.qr_key = key
        self._session.issued_at = time.time()
        await self._update(LoginState.KEY_ISSUED)
        logger.info(f"[登录管理] 获取到二维码key: {key}")
        if not self.is_current(generation):
            return self._session

        try:
            qr_image = await self.gateway.render_qr(key)
        except Exception as exc:
            return await self._fail(generation, as_login_error(exc), surface=True)
        if not self.is_current(generation):
            logger.debug("[登录管理] 生成二维码完成时尝试已被取代，丢弃")
            return self._session

        self._session.qr_image = qr_image
        await self._update(LoginState.QR_READY, HINT_SCAN)
        if not self.is_current(generation):
            return self._session

        self.poller.start(key, self.gateway.check_status, self)
        await self._update(LoginState.POLLING, HINT_WAITING)
        return self._session

    async def cancel(self) -> None:
        """用户主动取消，回到 idle"""
        # 获取 key 期间状态仍是 idle，但尝试已经开始
        live = not self._settled.is_set()
        previous = self._invalidate()
        if previous != LoginState.IDLE or live:
            logger.info(f"[登录管理] 已取消登录 (state={previous.value})")
            await self._notify()

    async def reset(self) -> None:
        """退出登录时重置会话，总是通知订阅者"""
        self._invalidate()
        await self._notify()

    async def wait_settled(self, timeout: Optional[float] = None) -> LoginSession:
        """等待当前尝试进入终态"""
        await asyncio.wait_for(self._settled.wait(), timeout)
        return self._session

    # === 终态 ===

    async def _fail(self, generation: int, error: LoginServiceError, surface: bool = False) -> LoginSession:
        if not self.is_current(generation):
            logger.debug(f"[登录管理] 已作废的尝试出错，忽略: {error}")
            return self._session
        logger.error(f"[登录管理] 二维码登录失败: {error}")
        self.poller.stop()
        self._session.qr_key = None
        self._session.last_error = error
        await self._update(LoginState.FAILED, f"错误: {error.errmsg}")
        self._settled.set()
        if surface:
            raise error
        return self._session

    async def _expire(self) -> None:
        self.poller.stop()
        self._session.qr_key = None
        await self._update(LoginState.EXPIRED, HINT_EXPIRED)
        self._settled.set()

    async def _confirm(self, generation: int, credential: str) -> None:
        logger.info(f"[登录管理] 扫码已确认，凭证 {mask_credential(credential)}")
        self.poller.stop()
        self._session.qr_key = None
        await self._update(LoginState.CONFIRMED, HINT_CONFIRMED)

        profile = await self.enricher.enrich(credential)
        if not self.is_current(generation):
            logger.info("[登录管理] 登录确认期间尝试已被取消，丢弃本次凭证")
            return

        try:
            saved = await self._on_confirmed(SessionRecord(credential=credential, profile=profile), generation)
        except Exception as exc:
            logger.error(f"[登录管理] 保存登录状态失败: {exc}")
            error = LoginServiceError(error_codes.CUSTOM_MESSAGE_ERROR, message=f"保存登录状态失败: {exc}")
            await self._fail(generation, error)
            return
        if saved:
            self._settled.set()

    # === PollHandler ===

    async def on_status(self, key: str, payload: Dict[str, Any]) -> bool:
        session = self._session
        if key != session.qr_key or session.state not in POLLING_STATES:
            logger.debug(f"[登录管理] 丢弃过期 key 的扫码状态 key={key}")
            return False

        generation = self._generation
        raw_code = payload.get("code")
        try:
            code = int(raw_code)
        except (TypeError, ValueError):
            code = None
        logger.debug(f"[登录管理] 扫码状态: code={raw_code}")

        if code == QrStatus.WAITING:
            await self._update(LoginState.POLLING, HINT_WAITING)
            return True
        if code == QrStatus.SCANNED:
            await self._update(LoginState.SCANNED, HINT_SCANNED)
            return True
        if code == QrStatus.EXPIRED:
            await self._expire()
            return False
        if code == QrStatus.CONFIRMED:
            credential = payload.get("cookie") or payload.get("cookies")
            if not credential or not isinstance(credential, str):
                await self._fail(generation, MalformedResponse("803 响应缺少 cookie"))
                return False
            await self._confirm(generation, credential)
            return False

        logger.warning(f"[登录管理] 未知状态码: {payload}")
        return True

    async def on_tick_failure(self, key: str, exc: Exception, failures: int) -> None:
        if key != self._session.qr_key:
            return
        await self._update(self._session.state, HINT_TICK_FAILED)

    async def on_poll_exhausted(self, key: str, exc: Exception) -> None:
        if key != self._session.qr_key:
            return
        await self._fail(self._generation, as_login_error(exc))
