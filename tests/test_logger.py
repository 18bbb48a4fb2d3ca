# -*- coding: utf-8 -*-
from qrlogin.providers.logger import get_logger, init_logger, mask_credential


def test_mask_credential_hides_the_middle():
    cookie = "MUSIC_U=0123456789abcdef; __csrf=xyz"
    masked = mask_credential(cookie)
    assert masked.startswith("MUSIC_")
    assert "0123456789abcdef" not in masked
    assert masked.endswith(f"({len(cookie)})")


def test_mask_credential_short_and_empty():
    assert mask_credential("") == "<empty>"
    assert mask_credential(None) == "<empty>"
    assert mask_credential("abc") == "***"


def test_file_logging_writes_to_configured_path(tmp_path):
    log_file = tmp_path / "logs" / "qrlogin.log"
    init_logger(level="DEBUG", log_file=str(log_file), enable_file=True, enable_console=False)
    get_logger().info("[测试] 写入日志文件")
    get_logger().complete()
    init_logger(enable_console=False)
    assert "写入日志文件" in log_file.read_text(encoding="utf-8")
