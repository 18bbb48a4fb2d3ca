# -*- coding: utf-8 -*-
"""网易云音乐扫码登录会话管理"""

__version__ = "1.0.0"
