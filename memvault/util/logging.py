"""
Structured operation logging for the memory service.
Every content-store write, index write and failed external call goes through here.
"""

import logging
from typing import Any, Dict, Optional


def _truncate(value: Any, limit: int = 50) -> Any:
    if isinstance(value, str) and len(value) > limit:
        return value[:limit] + "..."
    return value


class StructuredLogger:
    """Structured logger for memory, vector and failure-policy events."""

    def __init__(self, name: str = "memvault"):
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

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None, level: int = logging.INFO):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.log(level, message)

    def log_memory_operation(self, operation: str, memory_id: str, owner_id: str,
                             status: str = "success", details: Dict[str, Any] = None):
        """Log a content-store operation on a single memory."""
        log_details = {"memory_id": memory_id, "owner_id": owner_id}
        if details:
            log_details.update({k: _truncate(v) for k, v in details.items()})

        self.log_operation(f"memory.{operation}", status, log_details)

    def log_vector_operation(self, operation: str, record_id: str, details: Dict[str, Any] = None,
                             status: str = "success"):
        """Log a vector operation."""
        log_details = {"record_id": record_id}
        if details:
            log_details.update({k: _truncate(v) for k, v in details.items()})

        self.log_operation(f"vector.{operation}", status, log_details)

    def log_call_failure(self, operation: str, stage: str, error: BaseException, severity: str,
                         details: Optional[Dict[str, Any]] = None):
        """Log a failed external call together with the policy decision taken for it."""
        log_details = {
            "stage": stage,
            "severity": severity,
            "error_type": type(error).__name__,
            "error": _truncate(str(error), 100),
        }
        if details:
            log_details.update({k: _truncate(v) for k, v in details.items()})

        level = logging.WARNING if severity == "recoverable" else logging.ERROR
        self.log_operation(f"{operation}.{stage}", "failed", log_details, level=level)

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
