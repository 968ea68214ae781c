"""
Audit logging for task filesystem operations.
"""

import logging
from typing import Any, Dict, Optional

from .config import VFSConfig

AUDIT_LOGGER_NAME = "taskvfs.audit"


class AuditLogger:
    """Logs file operations for audit purposes."""

    def __init__(self, config: VFSConfig):
        """
        Initialize audit logger.

        Args:
            config: VFS configuration
        """
        self.config = config
        self.log_file = config.audit_log_path
        self._file_handler: Optional[logging.FileHandler] = None

        # Set up file logging if configured
        if self.log_file and config.enable_audit_logging:
            self._setup_file_logging()

    def _setup_file_logging(self):
        """Set up file-based audit logging."""
        self.log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(self.log_file)
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))

        audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
        audit_logger.addHandler(file_handler)
        audit_logger.setLevel(logging.INFO)
        self._file_handler = file_handler

    def log_operation(
        self,
        operation: str,
        scope: Optional[str],
        path: Optional[str],
        success: bool,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Log a file operation.

        Args:
            operation: Type of operation (write, read, delete, ...)
            scope: Scope the operation targeted
            path: Logical path
            success: Whether operation succeeded
            details: Optional additional details
        """
        if not self.config.enable_audit_logging:
            return

        status = "SUCCESS" if success else "FAILURE"
        message = (
            f"{status} - {operation} - {scope}:{path} "
            f"[task={self.config.task_id} run={self.config.run_id}]"
        )

        if details:
            detail_str = ", ".join(f"{k}={v}" for k, v in details.items())
            message += f" - {detail_str}"

        logging.getLogger(AUDIT_LOGGER_NAME).info(message)

    def close(self) -> None:
        """Detach and close the audit file handler, if any."""
        if self._file_handler is None:
            return
        logging.getLogger(AUDIT_LOGGER_NAME).removeHandler(self._file_handler)
        self._file_handler.close()
        self._file_handler = None
