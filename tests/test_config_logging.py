import json
import logging

import pytest

from search_api.config import Settings
from search_api.middleware.reqlog import MASK, redacted_body
from search_api.utils.logging import JsonFormatter, request_id_ctx


def test_cors_origins_from_csv_and_json():
    assert Settings(CORS_ALLOW_ORIGINS="http://a, http://b").CORS_ALLOW_ORIGINS == ["http://a", "http://b"]
    assert Settings(CORS_ALLOW_ORIGINS='["http://c"]').CORS_ALLOW_ORIGINS == ["http://c"]
    assert Settings(CORS_ALLOW_ORIGINS="").CORS_ALLOW_ORIGINS == ["*"]


def test_negative_reconcile_interval_rejected():
    with pytest.raises(ValueError):
        Settings(RECONCILE_INTERVAL_MIN=-1)


def test_json_formatter_promotes_dispatch_context():
    record = logging.LogRecord("search_api.services.server", logging.ERROR, __file__, 1, "failed: %s", ("boom",), None)
    record.server = "srv1"
    record.index = "idx1"
    record.operation = "add_index"

    token = request_id_ctx.set("rid-1")
    try:
        payload = json.loads(JsonFormatter().format(record))
    finally:
        request_id_ctx.reset(token)

    assert payload["msg"] == "failed: boom"
    assert payload["level"] == "ERROR"
    assert payload["request_id"] == "rid-1"
    assert (payload["server"], payload["index"], payload["operation"]) == ("srv1", "idx1", "add_index")


def test_request_body_secrets_are_masked_at_any_depth():
    raw = json.dumps({"id": "s1", "backend_config": {"api_key": "k", "host": "h", "auth": {"password": "p"}}}).encode()
    masked = json.loads(redacted_body(raw))
    assert masked["id"] == "s1"
    assert masked["backend_config"]["host"] == "h"
    assert masked["backend_config"]["api_key"] == MASK
    assert masked["backend_config"]["auth"]["password"] == MASK
    assert redacted_body(b"not json") == "<non-json>"
