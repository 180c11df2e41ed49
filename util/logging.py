"""
Director audit logging - structured operation logs for generation, approval, publishing and events.
"""

import logging
from typing import Any, Dict, List

class StructuredLogger:
    """Structured logger for director operations."""

    def __init__(self, name: str = "world_director"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        if status in ("failed", "error"):
            self.logger.warning(message)
        else:
            self.logger.info(message)

    def log_generation_pass(self, generator: str, pass_name: str, ok: bool, error: str = None):
        """Log the outcome of a single enrichment pass."""
        details = {"generator": generator, "pass": pass_name}
        if error:
            details["error"] = error[:200]

        self.log_operation(f"generation.{pass_name}", "success" if ok else "failed", details)

    def log_proposal_created(self, proposal_id: str, kind: str, generated_by: str):
        """Log proposal creation."""
        log_details = {
            "proposal_id": proposal_id,
            "kind": kind,
            "generated_by": generated_by
        }
        self.log_operation("proposal.created", "draft", log_details)

    def log_proposal_decision(self, proposal_id: str, decision: str, actor: str = "admin", reason: str = ""):
        """Log an approval or rejection."""
        log_details = {
            "proposal_id": proposal_id,
            "decision": decision,
            "actor": actor,
            "reason": reason[:100] if reason else ""  # Limit reason length
        }
        self.log_operation("proposal.decision", decision, log_details)

    def log_validation(self, proposal_id: str, errors: List[str]):
        """Log validation result for a proposal."""
        log_details = {
            "proposal_id": proposal_id,
            "error_count": len(errors),
            "errors": [str(e)[:100] for e in errors]
        }
        self.log_operation("proposal.validation", "rejected" if errors else "validated", log_details)

    def log_publish(self, proposal_id: str, kind: str, location: str, status: str = "success"):
        """Log a publish attempt."""
        log_details = {
            "proposal_id": proposal_id,
            "kind": kind,
            "location": location
        }
        self.log_operation("publisher.publish", status, log_details)

    def log_event_lifecycle(self, event_id: str, event_type: str, phase: str, entity_count: int = 0, details: Dict[str, Any] = None):
        """Log world event start, expiry or stop."""
        log_details = {
            "event_id": event_id,
            "event_type": event_type,
            "entity_count": entity_count
        }
        if details:
            log_details.update(details)

        self.log_operation(f"event.{phase}", "success", log_details)

    def log_automation_check(self, check: str, start_time: float, end_time: float, status: str = "success", details: Dict[str, Any] = None):
        """Log automation check execution."""
        duration_ms = round((end_time - start_time) * 1000, 2)
        log_details = {"duration_ms": duration_ms}
        if details:
            log_details.update(details)
        elif status == "failed":
            log_details["message"] = f"Automation check '{check}' failed after {duration_ms}ms"

        self.log_operation(f"automation.{check}", status, log_details)

    def log_snapshot(self, snapshot_id: str, action: str, status: str = "success", details: Dict[str, Any] = None):
        """Log snapshot create/restore/delete."""
        log_details = {"snapshot_id": snapshot_id}
        if details:
            log_details.update(details)

        self.log_operation(f"snapshot.{action}", status, log_details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)

# Global logger instance
logger = StructuredLogger()

SENSITIVE_FIELDS = ['api_key', 'apikey', 'secret', 'password', 'token', 'encryption_key']


def audit_event(event_type: str, identifiers: Dict[str, Any], payload: Dict[str, Any] = None, sensitive_fields: List[str] = None):
    """General audit event logging with secret redaction."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    log_details = identifiers.copy() if identifiers else {}

    if payload:
        log_details["payload"] = sanitize_payload(payload, sensitive_fields=sensitive_fields)

    # Determine operation type from event_type
    if event_type.startswith("proposal"):
        operation = "proposal"
    elif event_type.startswith("guardrail"):
        operation = "guardrail"
    elif event_type.startswith("snapshot"):
        operation = "snapshot"
    else:
        operation = event_type.replace(".", "_")

    logger.log_operation(operation, "audit", log_details)


def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None) -> Any:
    """Sanitize payloads for audit logging."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or k.lower() not in sensitive_fields:
                sanitized[k] = sanitize_payload(v, reveal_sensitive, sensitive_fields)
            else:
                sanitized[k] = "[REDACTED]"
        return sanitized
    elif isinstance(payload, str):
        # Truncate long strings
        return payload[:100] + "..." if len(payload) > 100 else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    else:
        return payload
