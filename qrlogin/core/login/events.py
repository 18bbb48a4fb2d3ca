# -*- coding: utf-8 -*-
"""会话变更通知"""
from __future__ import annotations

import inspect
from typing import Awaitable, Callable, List, Union

from qrlogin.providers.logger import get_logger

from .models import SessionSnapshot

Listener = Callable[[SessionSnapshot], Union[None, Awaitable[None]]]

logger = get_logger()


class SessionEvents:
    """进程内的 session-changed 事件分发，订阅者可以是普通函数或协程函数"""

    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """注册订阅者，返回取消订阅的函数"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def emit(self, snapshot: SessionSnapshot) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(snapshot)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                # 订阅者只负责展示，不能影响登录流程
                logger.warning(f"[登录管理] 会话变更订阅者处理失败: {exc}")
