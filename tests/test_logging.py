"""
Logging configuration tests.
"""

import json

import structlog

from billing_sync.core.logging import (
    SERVICE_NAME,
    add_service_name,
    configure_logging,
    redact_webhook_secrets,
)


class TestLoggingProcessors:
    def test_service_name_added(self):
        event_dict = add_service_name(None, "info", {"event": "webhook.received"})
        assert event_dict["service"] == SERVICE_NAME

    def test_signature_and_body_redacted(self):
        event_dict = redact_webhook_secrets(
            None,
            "info",
            {"event": "webhook.received", "signature": "t=1,v1=abc", "payload": {"id": "sub_1"}, "event_id": "evt_1"},
        )
        assert event_dict["signature"] == "[redacted]"
        assert event_dict["payload"] == "[redacted]"
        assert event_dict["event_id"] == "evt_1"

    def test_json_output_carries_bound_event_ids(self, capsys):
        configure_logging("info", "json")
        log = structlog.get_logger()
        with structlog.contextvars.bound_contextvars(event_id="evt_1", event_type="invoice.payment_failed"):
            log.info("webhook.received", signature="t=1,v1=abc")

        record = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert record["event"] == "webhook.received"
        assert record["event_id"] == "evt_1"
        assert record["event_type"] == "invoice.payment_failed"
        assert record["service"] == SERVICE_NAME
        assert record["signature"] == "[redacted]"
        assert record["level"] == "info"

    def test_level_filtering(self, capsys):
        configure_logging("warning", "json")
        structlog.get_logger().info("webhook.received")
        assert capsys.readouterr().out == ""
