# -*- coding: utf-8 -*-

SERVER_ERROR = (-1, '服务器错误')

CUSTOM_MESSAGE_ERROR = (9, '{message}')

# 扫码登录
GATEWAY_UNAVAILABLE = (40001, "登录网关不可用: {reason}")
GATEWAY_REJECTED = (40002, "登录网关拒绝请求: {reason}")
SESSION_EXPIRED = (40003, "二维码已过期，请刷新重试")
MALFORMED_RESPONSE = (40004, "登录网关响应格式错误: {reason}")
STORAGE_CORRUPT = (40005, "本地登录记录已损坏: {reason}")

# 通用业务错误码
PARAM_ERROR = (50001, "传入参数错误")
