# -*- coding: utf-8 -*-
"""
扫码状态轮询器

同一时刻最多只有一个轮询循环在运行；每次检查都等上一次结果处理完毕后才发出，
保证状态码按发送顺序生效。单次检查失败由 tenacity 按固定间隔重试，
连续失败达到上限后放弃并通知状态机。
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

from tenacity import AsyncRetrying, stop_after_attempt, wait_fixed

from qrlogin.providers.logger import get_logger

StatusCheck = Callable[[str], Awaitable[Dict[str, Any]]]


class PollHandler(Protocol):
    """轮询结果的接收方（状态机）"""

    async def on_status(self, key: str, payload: Dict[str, Any]) -> bool:
        """处理一次扫码状态，返回 False 表示结束轮询"""

    async def on_tick_failure(self, key: str, exc: Exception, failures: int) -> None:
        """单次检查失败（尚未达到上限）"""

    async def on_poll_exhausted(self, key: str, exc: Exception) -> None:
        """连续失败达到上限，轮询已结束"""


class _PollRun:
    """一次 start() 对应的轮询循环"""

    def __init__(self, key: str):
        self.key = key
        self.active = True
        self.in_callback = False
        self.task: Optional[asyncio.Task] = None

    def stop(self) -> None:
        self.active = False
        task = self.task
        if task is None or task.done():
            return
        # 回调执行期间不打断，回调返回后循环自行退出
        if self.in_callback or task is asyncio.current_task():
            return
        task.cancel()


class StatusPoller:
    """可取消的定时轮询任务"""

    def __init__(self, interval: float = 2.0, max_failures: int = 3):
        self.interval = interval
        self.max_failures = max_failures
        self.logger = get_logger()
        self._run: Optional[_PollRun] = None

    @property
    def running(self) -> bool:
        run = self._run
        return bool(run and run.active and run.task and not run.task.done())

    @property
    def key(self) -> Optional[str]:
        return self._run.key if self._run and self._run.active else None

    def start(self, key: str, check: StatusCheck, handler: PollHandler) -> None:
        """开始轮询 key；已有轮询时先停止旧的"""
        if self._run is not None:
            self.logger.debug(f"[轮询] 停止旧的轮询 key={self._run.key}")
            self.stop()
        run = _PollRun(key)
        run.task = asyncio.create_task(self._loop(run, check, handler), name=f"qr-poll-{key}")
        self._run = run
        self.logger.info(f"[轮询] 开始轮询扫码状态 key={key} interval={self.interval}s")

    def stop(self) -> None:
        """停止当前轮询，可重复调用"""
        run = self._run
        self._run = None
        if run is None:
            return
        run.stop()
        self.logger.info(f"[轮询] 已停止二维码轮询 key={run.key}")

    async def _loop(self, run: _PollRun, check: StatusCheck, handler: PollHandler) -> None:
        try:
            while run.active:
                await asyncio.sleep(self.interval)
                if not run.active:
                    return
                try:
                    payload = await self._check_with_retry(run, check, handler)
                except Exception as exc:
                    if not run.active:
                        return
                    self.logger.error(
                        f"[轮询] 连续 {self.max_failures} 次检查失败，放弃轮询 key={run.key}: {exc}"
                    )
                    run.active = False
                    await self._callback(run, handler.on_poll_exhausted(run.key, exc))
                    return

                if not run.active:
                    self.logger.debug(f"[轮询] 丢弃过期 key 的响应 key={run.key}")
                    return
                keep_polling = await self._callback(run, handler.on_status(run.key, payload))
                if not keep_polling:
                    run.active = False
        except asyncio.CancelledError:
            self.logger.debug(f"[轮询] 轮询任务已取消 key={run.key}")
        finally:
            if self._run is run and not run.active:
                self._run = None

    async def _check_with_retry(self, run: _PollRun, check: StatusCheck,
                                handler: PollHandler) -> Dict[str, Any]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_failures),
            wait=wait_fixed(self.interval),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                try:
                    return await check(run.key)
                except Exception as exc:
                    failures = attempt.retry_state.attempt_number
                    self.logger.warning(
                        f"[轮询] 检查扫码状态失败({failures}/{self.max_failures}) key={run.key}: {exc}"
                    )
                    if run.active and failures < self.max_failures:
                        await self._callback(run, handler.on_tick_failure(run.key, exc, failures))
                    if not run.active:
                        # 已被停止，不再重试
                        raise asyncio.CancelledError() from exc
                    raise

    @staticmethod
    async def _callback(run: _PollRun, coro: Awaitable[Any]) -> Any:
        run.in_callback = True
        try:
            return await coro
        finally:
            run.in_callback = False
