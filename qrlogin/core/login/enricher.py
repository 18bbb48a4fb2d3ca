# -*- coding: utf-8 -*-
"""登录成功后补充账号资料"""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from qrlogin.providers.logger import get_logger

from .models import ProfileData

if TYPE_CHECKING:
    from qrlogin.core.client.netease_client import AuthGateway

logger = get_logger()


class ProfileEnricher:
    """用刚拿到的凭证读取账号信息，可选再读取用户详情。任何一步出错都返回 None。"""

    def __init__(self, gateway: "AuthGateway", fetch_detail: bool = True):
        self.gateway = gateway
        self.fetch_detail = fetch_detail

    async def enrich(self, credential: str) -> Optional[ProfileData]:
        if not credential:
            return None
        try:
            account_data = await self.gateway.fetch_account(credential)
            account = account_data.get("account")
            profile = account_data.get("profile")
            if not isinstance(account, dict) or not isinstance(profile, dict):
                logger.warning("[登录管理] 账号信息缺少 account/profile，跳过资料补充")
                return None

            detail = None
            user_id = profile.get("userId")
            if self.fetch_detail and user_id:
                detail_data = await self.gateway.fetch_detail(credential, user_id)
                if detail_data.get("code") == 200:
                    detail = detail_data
                    # 详情接口的计数比账号接口更全
                    detail_profile = detail_data.get("profile")
                    if isinstance(detail_profile, dict):
                        profile = {**profile, **detail_profile}
                else:
                    logger.debug(f"[登录管理] 用户详情返回 code={detail_data.get('code')}，仅使用账号资料")

            result = ProfileData.from_gateway(profile, account=account, detail=detail)
            logger.info(f"[登录管理] 已获取用户资料: {result.nickname or '用户'} ({result.user_id})")
            return result
        except Exception as exc:
            logger.error(f"[登录管理] 获取用户信息失败: {exc}")
            return None
