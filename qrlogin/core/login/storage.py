# -*- coding: utf-8 -*-
"""
登录记录持久化

一个存储实例只保存一条登录记录（session_key）以及一个可选的 API 地址覆盖（api_base_key）。
读取失败一律降级为“未登录”，不会向调用方抛出异常。
"""
from __future__ import annotations

import os
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Union

import aiofiles
import aiofiles.os
import redis.asyncio as aioredis
import ujson

from qrlogin.providers.logger import get_logger

from .exceptions import StorageCorrupt
from .models import SessionRecord

DEFAULT_SESSION_KEY = "netease_session"
DEFAULT_API_BASE_KEY = "netease_api_base"


def dump_record(record: SessionRecord) -> str:
    return ujson.dumps(record.to_storage_dict(), ensure_ascii=False)


def parse_record(raw: Union[str, bytes]) -> SessionRecord:
    """反序列化登录记录，任何格式问题都转换为 StorageCorrupt"""
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise StorageCorrupt(f"编码错误: {exc}") from exc
    try:
        data = ujson.loads(raw)
    except ValueError as exc:
        raise StorageCorrupt(f"JSON 解析失败: {exc}") from exc
    if not isinstance(data, dict):
        raise StorageCorrupt(f"记录类型错误: {type(data).__name__}")
    try:
        return SessionRecord.from_storage_dict(data)
    except (KeyError, TypeError, ValueError) as exc:
        raise StorageCorrupt(f"记录字段错误: {exc}") from exc


class SessionStore(ABC):
    """登录记录存储接口"""

    def __init__(self, session_key: str = DEFAULT_SESSION_KEY, api_base_key: str = DEFAULT_API_BASE_KEY):
        self.session_key = session_key
        self.api_base_key = api_base_key
        self.logger = get_logger()

    # === 原始键值操作，由各后端实现 ===

    @abstractmethod
    async def _read(self, key: str) -> Optional[Union[str, bytes]]:
        """读取原始值，不存在时返回 None"""

    @abstractmethod
    async def _write(self, key: str, value: str) -> None:
        """整体覆盖写入，对并发读取者必须是原子的"""

    @abstractmethod
    async def _delete(self, key: str) -> None:
        """删除键，不存在时不报错"""

    # === 登录记录 ===

    async def load(self) -> Optional[SessionRecord]:
        try:
            raw = await self._read(self.session_key)
        except Exception as exc:
            self.logger.warning(f"[会话存储] 读取登录记录失败，按未登录处理: {exc}")
            return None
        if raw is None or raw == "" or raw == b"":
            return None
        try:
            return parse_record(raw)
        except StorageCorrupt as exc:
            self.logger.warning(f"[会话存储] {exc.errmsg}，按未登录处理")
            return None

    async def save(self, record: SessionRecord) -> None:
        await self._write(self.session_key, dump_record(record))
        self.logger.debug(f"[会话存储] 登录记录已保存: key={self.session_key}")

    async def clear(self) -> None:
        await self._delete(self.session_key)
        self.logger.debug(f"[会话存储] 登录记录已清除: key={self.session_key}")

    # === API 地址覆盖 ===

    async def load_api_base(self) -> Optional[str]:
        try:
            raw = await self._read(self.api_base_key)
        except Exception as exc:
            self.logger.warning(f"[会话存储] 读取 API 地址失败: {exc}")
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="ignore")
        if not raw:
            return None
        return raw.strip() or None

    async def save_api_base(self, api_base: str) -> None:
        await self._write(self.api_base_key, api_base)

    async def clear_api_base(self) -> None:
        await self._delete(self.api_base_key)


class MemorySessionStore(SessionStore):
    """进程内存储，不跨进程持久化"""

    def __init__(self, session_key: str = DEFAULT_SESSION_KEY, api_base_key: str = DEFAULT_API_BASE_KEY):
        super().__init__(session_key, api_base_key)
        self._data: Dict[str, str] = {}

    async def _read(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def _write(self, key: str, value: str) -> None:
        self._data[key] = value

    async def _delete(self, key: str) -> None:
        self._data.pop(key, None)


class FileSessionStore(SessionStore):
    """本地文件存储：每个键一个文件，先写临时文件再 os.replace 原子替换"""

    def __init__(self, data_dir: Union[str, Path], session_key: str = DEFAULT_SESSION_KEY,
                 api_base_key: str = DEFAULT_API_BASE_KEY):
        super().__init__(session_key, api_base_key)
        self.data_dir = Path(data_dir)

    def _path(self, key: str) -> Path:
        return self.data_dir / f"{key}.json"

    async def _read(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        async with aiofiles.open(path, "r", encoding="utf-8") as fp:
            return await fp.read()

    async def _write(self, key: str, value: str) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as fp:
                await fp.write(value)
                await fp.flush()
                os.fsync(fp.fileno())
            await aiofiles.os.replace(tmp_path, path)
        except BaseException:
            if tmp_path.exists():
                tmp_path.unlink()
            raise

    async def _delete(self, key: str) -> None:
        path = self._path(key)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass


class RedisSessionStore(SessionStore):
    """使用 Redis 持久化登录记录"""

    KEY_PREFIX = "login:netease:"

    def __init__(self, client: aioredis.Redis, session_key: str = DEFAULT_SESSION_KEY,
                 api_base_key: str = DEFAULT_API_BASE_KEY, ttl: Optional[int] = None):
        super().__init__(session_key, api_base_key)
        self.client = client
        self.ttl = ttl

    def _key(self, key: str) -> str:
        return f"{self.KEY_PREFIX}{key}"

    async def _read(self, key: str) -> Optional[bytes]:
        return await self.client.get(self._key(key))

    async def _write(self, key: str, value: str) -> None:
        # SET 本身是原子的，读者只会看到旧值或新值
        await self.client.set(self._key(key), value.encode("utf-8"), ex=self.ttl)

    async def _delete(self, key: str) -> None:
        await self.client.delete(self._key(key))
