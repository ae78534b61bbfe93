import asyncio
import json
import logging

import pytest
from pydantic import BaseModel

from vehicle_sales.core.logging import JsonFormatter, _redact, set_job_name, set_request_id, set_run_id
from vehicle_sales.core.observability import log_step


def test_log_step_decorator_async():
    """The decorator keeps async functions working."""

    @log_step("test.async_function")
    async def test_async_function(param1: str, param2: int):
        return f"result: {param1}-{param2}"

    assert asyncio.run(test_async_function("test", 42)) == "result: test-42"


def test_log_step_decorator_sync():
    @log_step("test.sync_function")
    def test_sync_function(param1: str, param2: int):
        return f"result: {param1}-{param2}"

    assert test_sync_function("test", 42) == "result: test-42"


def test_log_step_decorator_exception(caplog):
    caplog.set_level(logging.ERROR, logger="steps")

    @log_step("test.failing_function")
    def test_failing_function():
        raise ValueError("Test error")

    with pytest.raises(ValueError, match="Test error"):
        test_failing_function()

    errors = [r for r in caplog.records if r.name == "steps"]
    assert errors[-1].extra["error_type"] == "ValueError"


def test_log_step_redacts_arguments(caplog):
    caplog.set_level(logging.DEBUG, logger="steps")

    @log_step("test.with_tax_id")
    def handler(buyer_tax_id: str):
        return "ok"

    handler(buyer_tax_id="52998224725")

    enter = [r for r in caplog.records if r.getMessage() == "ENTER test.with_tax_id"][0]
    assert enter.extra["args"] == {"buyer_tax_id": "***"}


def test_redact_nested_and_truncates():
    redacted = _redact({"cpfComprador": "52998224725", "nested": [{"Authorization": "Bearer x"}], "ok": 1})
    assert redacted == {"cpfComprador": "***", "nested": [{"Authorization": "***"}], "ok": 1}

    long_value = _redact("x" * 5000)
    assert long_value.startswith("x" * 10)
    assert "chars)" in long_value


def test_json_formatter_includes_context():
    set_run_id("run-1")
    set_request_id("req-1")
    set_job_name("reconciliation_sweep")
    try:
        record = logging.LogRecord("webhooks", logging.INFO, __file__, 1, "Webhook delivered", None, None)
        record.extra = {"sale_id": "s-1", "buyer_tax_id": "52998224725"}

        payload = json.loads(JsonFormatter().format(record))
    finally:
        set_request_id(None)
        set_job_name(None)

    assert payload["message"] == "Webhook delivered"
    assert payload["run_id"] == "run-1"
    assert payload["request_id"] == "req-1"
    assert payload["job_name"] == "reconciliation_sweep"
    assert payload["sale_id"] == "s-1"
    assert payload["buyer_tax_id"] == "***"


def test_log_step_redacts_result_preview(caplog):
    caplog.set_level(logging.INFO, logger="steps")

    class Buyer(BaseModel):
        name: str
        buyer_tax_id: str

    @log_step("test.returns_model")
    def load_buyer():
        return Buyer(name="Ana", buyer_tax_id="52998224725")

    @log_step("test.returns_list")
    def load_buyers():
        return [Buyer(name="Ana", buyer_tax_id="52998224725"), {"cpfComprador": "11144477735"}]

    load_buyer()
    load_buyers()

    exits = {r.getMessage(): r.extra["result_preview"] for r in caplog.records if r.name == "steps"}
    assert exits["EXIT test.returns_model"] == str({"name": "Ana", "buyer_tax_id": "***"})
    assert "52998224725" not in exits["EXIT test.returns_list"]
    assert "11144477735" not in exits["EXIT test.returns_list"]
    assert exits["EXIT test.returns_list"].count("***") == 2
