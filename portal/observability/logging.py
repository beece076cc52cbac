"""
Structured logging setup for the exam portal auth service.
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Dict, Any, Optional


_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'taskName', 'message'
}


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # Extra fields passed through ``extra=``
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


def setup_logging(
    level: str = "INFO",
    format_type: str = "json",
    log_file: Optional[str] = None
) -> None:
    """
    Setup application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        format_type: Format type (json, text)
        log_file: Optional log file path
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)

    if format_type == "json":
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    logging.getLogger("uvicorn.access").disabled = True
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the specified name."""
    return logging.getLogger(name)


class AuditLogger:
    """
    Security audit logging.

    Records who did what to which account. Passwords, tokens and hashes are
    never passed to this logger.
    """

    def __init__(self, logger_name: str = "portal.audit"):
        self.logger = get_logger(logger_name)

    def log_login_attempt(
        self,
        email: str,
        principal_type: str,
        success: bool,
        reason: Optional[str] = None,
        principal_id: Optional[str] = None
    ):
        """Log login attempts."""
        level = logging.INFO if success else logging.WARNING
        message = f"{principal_type.capitalize()} login {'successful' if success else 'failed'}"

        self.logger.log(
            level,
            message,
            extra={
                "email": email,
                "principal_type": principal_type,
                "principal_id": principal_id,
                "success": success,
                "reason": reason,
                "event": "login_attempt"
            }
        )

    def log_session_event(
        self,
        action: str,
        admin_id: Optional[str],
        session_id: Optional[str] = None,
        count: Optional[int] = None
    ):
        """Log session lifecycle changes (created, refreshed, revoked)."""
        self.logger.info(
            f"Session {action}",
            extra={
                "action": action,
                "admin_id": admin_id,
                "session_id": session_id,
                "count": count,
                "event": "session"
            }
        )

    def log_management_action(
        self,
        actor: str,
        action: str,
        target_id: str,
        success: bool,
        details: Optional[Dict[str, Any]] = None
    ):
        """Log account management actions."""
        level = logging.INFO if success else logging.WARNING
        message = f"Management action: {action} admin {target_id}"

        self.logger.log(
            level,
            message,
            extra={
                "actor": actor,
                "action": action,
                "target_id": target_id,
                "success": success,
                "details": details or {},
                "event": "management_action"
            }
        )
