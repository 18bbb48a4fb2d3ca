# -*- coding: utf-8 -*-
"""登录服务相关异常定义。"""

from qrlogin.api.scheme import error_codes
from qrlogin.api.scheme.errors import Error


class LoginServiceError(Error):
    """登录服务异常"""

    kind = "LoginServiceError"

    def __init__(self, err=None, reason: str = "", **kwargs):
        self.reason = reason
        if err is not None and "{reason}" in err[1]:
            kwargs["reason"] = reason or "未知原因"
        super().__init__(err, **kwargs)


class GatewayUnavailable(LoginServiceError):
    """网络/传输层失败，或网关返回 HTTP 错误状态。"""

    kind = "GatewayUnavailable"

    def __init__(self, reason: str = ""):
        super().__init__(error_codes.GATEWAY_UNAVAILABLE, reason=reason)


class GatewayRejected(LoginServiceError):
    """获取 key / 生成二维码时网关返回非 200 业务码。"""

    kind = "GatewayRejected"

    def __init__(self, reason: str = "", code=None):
        self.code = code
        super().__init__(error_codes.GATEWAY_REJECTED, reason=reason)


class SessionExpired(LoginServiceError):
    """二维码过期（800）。仅用于描述终态，不会抛给调用方。"""

    kind = "SessionExpired"

    def __init__(self):
        super().__init__(error_codes.SESSION_EXPIRED)


class MalformedResponse(LoginServiceError):
    """JSON 解析失败或响应结构不符合预期。"""

    kind = "MalformedResponse"

    def __init__(self, reason: str = ""):
        super().__init__(error_codes.MALFORMED_RESPONSE, reason=reason)


class StorageCorrupt(LoginServiceError):
    """持久化的登录记录无法解析。在存储边界被吞掉，降级为未登录。"""

    kind = "StorageCorrupt"

    def __init__(self, reason: str = ""):
        super().__init__(error_codes.STORAGE_CORRUPT, reason=reason)
