"""
Structured audit logging for tool execution and recovery decisions.

Produces JSON log entries via Python's standard logging module under
the ``kirapilot.audit`` logger name.  Each entry includes a timestamp,
event_type, optional conversation_id, and event-specific fields.

Usage::

    audit = AuditLogger(conversation_id="conv-1")
    audit.log_tool_execution(
        tool_name="get_tasks",
        args_summary={"status": "pending"},
        success=True,
        duration_ms=12,
    )
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

_audit_logger = logging.getLogger("kirapilot.audit")


class AuditLogger:
    """Structured audit logger for tool calls and loop outcomes."""

    def __init__(self, conversation_id: Optional[str] = None) -> None:
        self._default_conversation_id = conversation_id

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _emit(self, event_type: str, fields: Dict[str, Any]) -> None:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
        }
        entry.update(fields)
        _audit_logger.info(json.dumps(entry, default=str))

    def _cid(self, conversation_id: Optional[str] = None) -> str:
        return conversation_id or self._default_conversation_id or ""

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------

    def log_tool_execution(
        self,
        tool_name: str,
        args_summary: Dict[str, Any],
        success: bool,
        duration_ms: int,
        attempts: int = 1,
        error_kind: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> None:
        """Log a tool execution outcome (after any retries)."""
        fields: Dict[str, Any] = {
            "conversation_id": self._cid(conversation_id),
            "tool_name": tool_name,
            "args_summary": args_summary,
            "success": success,
            "duration_ms": duration_ms,
            "attempts": attempts,
        }
        if error_kind is not None:
            fields["error_kind"] = error_kind
        self._emit("tool_execution", fields)

    def log_recovery_decision(
        self,
        tool_name: str,
        error_kind: str,
        decision: str,
        attempt: Optional[int] = None,
        retry_after_ms: Optional[int] = None,
        conversation_id: Optional[str] = None,
    ) -> None:
        """Log a retry / fallback / terminal decision."""
        fields: Dict[str, Any] = {
            "conversation_id": self._cid(conversation_id),
            "tool_name": tool_name,
            "error_kind": error_kind,
            "decision": decision,
        }
        if attempt is not None:
            fields["attempt"] = attempt
        if retry_after_ms is not None:
            fields["retry_after_ms"] = retry_after_ms
        self._emit("recovery_decision", fields)

    def log_loop_finished(
        self,
        state: str,
        iterations: int,
        tool_calls: List[str],
        duration_ms: int,
        abort_reason: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> None:
        """Log a reasoning loop summary."""
        fields: Dict[str, Any] = {
            "conversation_id": self._cid(conversation_id),
            "state": state,
            "iterations": iterations,
            "tool_calls": tool_calls,
            "tool_calls_count": len(tool_calls),
            "duration_ms": duration_ms,
        }
        if abort_reason is not None:
            fields["abort_reason"] = abort_reason
        self._emit("loop_finished", fields)
