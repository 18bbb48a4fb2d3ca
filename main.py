# -*- coding: utf-8 -*-

from __future__ import annotations

import uvicorn
from qrlogin.api_service import create_app
from qrlogin.config.settings import global_settings


if __name__ == "__main__":
    uvicorn.run(create_app(global_settings), host=global_settings.app.host, port=global_settings.app.port)
