"""
Audit logging for Suitter.

Logs security-relevant zkLogin events to Python's logging system. Identity
tokens are never logged and subjects only appear as short fingerprints.
"""

import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_logger = logging.getLogger("audit")
_audit_logger = None  # Will be initialized by init_audit_logger


def init_audit_logger():
    """Initialize the audit logger."""
    global _audit_logger

    _logger.setLevel(logging.INFO)

    # Add console handler if not already present
    if not _logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s - AUDIT - %(levelname)s - %(message)s"))
        _logger.addHandler(handler)

    _audit_logger = AuditLogger()
    _logger.info("Audit logger initialized")


def get_audit_logger():
    """Get the audit logger instance."""
    global _audit_logger

    if _audit_logger is None:
        init_audit_logger()
    return _audit_logger


def fingerprint(value: Optional[str]) -> Optional[str]:
    """Short, non-reversible tag for correlating a subject across events."""
    if not value:
        return None
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:16]


class AuditLogger:
    """
    Audit logging interface for security events.

    Covers salt issuance, proof acquisition, login outcomes and signature
    assembly.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or _logger

    def log_event(self, event: str, **details: Any) -> None:
        """Generic structured audit event."""

        payload = {"event": event, **details, "timestamp": datetime.now(timezone.utc).isoformat()}
        self.logger.info(json.dumps(payload, default=str))

    def log_auth_attempt(self, sub: Optional[str], method: str, success: bool, reason: Optional[str] = None):
        """Log a login completion attempt."""
        status = "SUCCESS" if success else "FAILURE"
        msg = f"AUTH_ATTEMPT | sub={fingerprint(sub)} | method={method} | status={status}"
        if reason:
            msg += f" | reason={reason}"
        self.logger.info(msg)

    def log_salt_issued(self, sub: str, ip_address: Optional[str] = None):
        """Log salt derivation for a subject."""
        self.logger.info(f"SALT_ISSUED | sub={fingerprint(sub)} | ip={ip_address}")

    def log_proof_requested(self, max_epoch: int, success: bool, status_code: Optional[int] = None):
        """Log a proving service request."""
        status = "SUCCESS" if success else "FAILURE"
        self.logger.info(f"PROOF_REQUEST | max_epoch={max_epoch} | status={status} | http={status_code}")

    def log_signature_assembled(self, address: str, max_epoch: int):
        """Log composite signature assembly."""
        self.logger.info(f"SIG_ASSEMBLED | address={address[:18]}... | max_epoch={max_epoch}")

    def log_ledger_call(self, method: str, success: bool, error: Optional[str] = None):
        """Log a ledger RPC call."""
        status = "SUCCESS" if success else "FAILURE"
        msg = f"LEDGER_CALL | method={method} | status={status}"
        if error:
            msg += f" | error={error}"
        self.logger.info(msg)

    def log_security_event(self, event_type: str, severity: str, details: Dict[str, Any]):
        """Log security event."""
        self.logger.warning(f"SECURITY_EVENT | type={event_type} | severity={severity} | details={details}")

    def log_session_created(self, nonce: str, max_epoch: int):
        """Log a new pending login session."""
        self.logger.info(f"SESSION_CREATED | nonce={nonce[:8]}... | max_epoch={max_epoch}")

    def log_session_destroyed(self, reason: str = "logout"):
        """Log session destruction."""
        self.logger.info(f"SESSION_DESTROYED | reason={reason}")

    def log_rate_limit_exceeded(self, ip_address: str, endpoint: str):
        """Log rate limit violation."""
        self.logger.warning(f"RATE_LIMIT_EXCEEDED | ip={ip_address} | endpoint={endpoint}")

    def log_error(self, error_type: str, error_msg: str, context: Optional[Dict[str, Any]] = None):
        """Log application error."""
        msg = f"ERROR | type={error_type} | msg={error_msg}"
        if context:
            msg += f" | context={context}"
        self.logger.error(msg)
