"""
Tests for structured audit logging and payload redaction.
"""

from unittest.mock import patch

from util.logging import audit_event, logger, sanitize_payload


class TestSanitizePayload:
    """Test secret redaction in audit payloads."""

    def test_redacts_nested_secrets(self):
        payload = {"profiles": {"local": {"api_key": "sk-live", "model": "llama3"}}, "Token": "abc"}
        sanitized = sanitize_payload(payload)
        assert sanitized["profiles"]["local"]["api_key"] == "[REDACTED]"
        assert sanitized["profiles"]["local"]["model"] == "llama3"
        assert sanitized["Token"] == "[REDACTED]"

    def test_reveal_sensitive(self):
        assert sanitize_payload({"password": "pw"}, reveal_sensitive=True) == {"password": "pw"}

    def test_truncates_long_strings(self):
        sanitized = sanitize_payload(["x" * 150])
        assert sanitized[0] == "x" * 100 + "..."


class TestStructuredLogger:
    """Test operation log routing."""

    def test_failed_operation_logs_warning(self):
        with patch.object(logger.logger, "warning") as warning, patch.object(logger.logger, "info") as info:
            logger.log_generation_pass("CharacterGenerator", "creative", False, "timeout")
        warning.assert_called_once()
        info.assert_not_called()
        assert "generation.creative" in warning.call_args[0][0]

    def test_validation_status(self):
        with patch.object(logger, "log_operation") as log_operation:
            logger.log_validation("prop_1", ["Item cost 99999 exceeds budget of 10000"])
        operation, status, details = log_operation.call_args[0]
        assert operation == "proposal.validation"
        assert status == "rejected"
        assert details["error_count"] == 1

    def test_audit_event_redacts(self):
        with patch.object(logger, "log_operation") as log_operation:
            audit_event("guardrail.saved", {"path": "guardrails.json"}, {"api_key": "sk-live"})
        operation, status, details = log_operation.call_args[0]
        assert operation == "guardrail"
        assert status == "audit"
        assert details["payload"] == {"api_key": "[REDACTED]"}
