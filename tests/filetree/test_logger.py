"""日志格式化与请求 ID 注入测试。"""

import json
import logging

from app.packages.filetree.core.logger import ColorFormatter, JsonFormatter, RequestIdFilter, set_request_id


def _record(msg="hello", level=logging.INFO) -> logging.LogRecord:
    return logging.LogRecord("app", level, __file__, 1, msg, None, None)


def test_request_id_filter_and_json_formatter():
    set_request_id("rid-9")
    try:
        record = _record()
        assert RequestIdFilter().filter(record) is True
        payload = json.loads(JsonFormatter().format(record))
    finally:
        set_request_id(None)

    assert payload["request_id"] == "rid-9"
    assert payload["msg"] == "hello"
    assert payload["level"] == "INFO"


def test_color_formatter_only_colors_when_enabled():
    record = _record(level=logging.ERROR)
    RequestIdFilter().filter(record)

    plain = ColorFormatter(use_colors=False).format(record)
    colored = ColorFormatter(use_colors=True).format(record)

    assert "ERROR" in plain and "\033[" not in plain
    assert colored.startswith(ColorFormatter.COLORS[logging.ERROR])
    assert colored.endswith(ColorFormatter.RESET)
