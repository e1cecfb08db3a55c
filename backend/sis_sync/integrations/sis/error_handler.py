"""
Error taxonomy and logging utilities for the PowerSchool sync engine.
"""

import inspect
import logging
import traceback
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional, Callable, Union
from functools import wraps


# Configure SIS-specific logger
sis_logger = logging.getLogger('sis_integration')


class SISErrorSeverity:
    """Error severity levels for SIS operations."""
    LOW = "low"           # Minor issues, system continues
    MEDIUM = "medium"     # Significant issues, a single run is impacted
    HIGH = "high"         # Integration unusable until fixed
    CRITICAL = "critical" # System-breaking issues


class SISErrorCategory:
    """Error categories for better classification."""
    AUTHENTICATION = "authentication"
    NETWORK = "network"
    DATA_VALIDATION = "data_validation"
    CONFIGURATION = "configuration"
    PROVIDER_ERROR = "provider_error"
    DATABASE_ERROR = "database_error"
    UNKNOWN = "unknown"


class SISError(Exception):
    """Base exception for SIS integration errors with enhanced metadata."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        category: str = SISErrorCategory.UNKNOWN,
        severity: str = SISErrorSeverity.MEDIUM,
        operation_type: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        retryable: bool = True,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.operation_type = operation_type
        self.details = details or {}
        self.retryable = retryable
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

    @property
    def error_type(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/storage."""
        return {
            'message': self.message,
            'error_type': self.error_type,
            'category': self.category,
            'severity': self.severity,
            'operation_type': self.operation_type,
            'details': self.details,
            'retryable': self.retryable,
            'status_code': self.status_code,
            'timestamp': self.timestamp.isoformat(),
            'traceback': traceback.format_exc() if self.original_exception else None
        }


class ConfigIncompleteError(SISError):
    """PowerSchool connection settings are missing required values."""

    status_code = 400

    def __init__(self, message: str = "PowerSchool configuration is incomplete", missing: Optional[List[str]] = None, **kwargs):
        details = kwargs.pop('details', {})
        if missing:
            details['missing'] = missing
        super().__init__(
            message,
            category=SISErrorCategory.CONFIGURATION,
            severity=SISErrorSeverity.HIGH,
            retryable=False,
            details=details,
            **kwargs
        )


class AuthError(SISError):
    """Authentication-related errors."""

    status_code = 401

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('retryable', True)
        super().__init__(
            message,
            category=SISErrorCategory.AUTHENTICATION,
            severity=SISErrorSeverity.HIGH,
            **kwargs
        )


class AuthConfigError(AuthError):
    """Credentials needed to request a token are not configured."""

    status_code = 401

    def __init__(self, message: str = "PowerSchool credentials are incomplete", **kwargs):
        kwargs['retryable'] = False
        super().__init__(message, **kwargs)


class AuthAcquisitionError(AuthError):
    """The PowerSchool token endpoint rejected the request or could not be reached."""

    status_code = 500

    def __init__(self, message: str, status: Optional[int] = None, body: Optional[str] = None, **kwargs):
        details = kwargs.pop('details', {})
        details.update({'status': status, 'body': body})
        self.status = status
        self.body = body
        super().__init__(message, details=details, **kwargs)


class UpstreamApiError(SISError):
    """A PowerSchool query returned a non-retryable error response."""

    status_code = 500

    def __init__(self, status: Optional[int], body: str = "", message: Optional[str] = None, **kwargs):
        self.status = status
        self.body = body
        if message is None:
            if status is None:
                message = f"PowerSchool request failed: {body}"
            else:
                message = f"PowerSchool API error: {status} - {body}" if body else f"PowerSchool API error: {status}"
        details = kwargs.pop('details', {})
        details.update({'status': status, 'body': body})
        super().__init__(
            message,
            category=SISErrorCategory.PROVIDER_ERROR if status is not None else SISErrorCategory.NETWORK,
            severity=SISErrorSeverity.MEDIUM,
            retryable=status is None or status >= 500,
            details=details,
            **kwargs
        )


class MalformedRecordError(SISError):
    """A required identifying field in an upstream record could not be parsed."""

    status_code = 500

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None, **kwargs):
        details = kwargs.pop('details', {})
        details.update({'field': field, 'value': None if value is None else str(value)})
        self.field = field
        self.value = value
        super().__init__(
            message,
            category=SISErrorCategory.DATA_VALIDATION,
            severity=SISErrorSeverity.MEDIUM,
            retryable=False,
            details=details,
            **kwargs
        )


class SISErrorHandler:
    """Central error handler for SIS operations."""

    def __init__(self, max_log_entries: int = 1000):
        self._error_log: List[Dict[str, Any]] = []
        self._max_log_entries = max_log_entries

    def log_error(
        self,
        error: Union[SISError, Exception],
        context: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Log an error with full context.

        Args:
            error: The error to log
            context: Additional context information

        Returns:
            The stored error record
        """
        if isinstance(error, SISError):
            error_dict = error.to_dict()
        else:
            error_dict = {
                'message': str(error),
                'error_type': type(error).__name__,
                'category': SISErrorCategory.UNKNOWN,
                'severity': SISErrorSeverity.MEDIUM,
                'timestamp': datetime.now(timezone.utc).isoformat(),
                'traceback': traceback.format_exc()
            }

        if context:
            error_dict.update(context)

        # Log to appropriate level based on severity
        severity = error_dict.get('severity', SISErrorSeverity.MEDIUM)
        log_message = f"SIS Error [{severity.upper()}]: {error_dict['message']}"

        if severity == SISErrorSeverity.CRITICAL:
            sis_logger.critical(log_message)
        elif severity == SISErrorSeverity.HIGH:
            sis_logger.error(log_message)
        elif severity == SISErrorSeverity.MEDIUM:
            sis_logger.warning(log_message)
        else:
            sis_logger.info(log_message)

        # Store in memory log (for recent errors API)
        self._error_log.append(error_dict)
        if len(self._error_log) > self._max_log_entries:
            self._error_log.pop(0)

        return error_dict

    def get_recent_errors(
        self,
        limit: int = 50,
        severity_filter: Optional[str] = None,
        category_filter: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Get recent errors with optional filtering."""
        filtered_errors = self._error_log.copy()

        if severity_filter:
            filtered_errors = [e for e in filtered_errors if e.get('severity') == severity_filter]

        if category_filter:
            filtered_errors = [e for e in filtered_errors if e.get('category') == category_filter]

        return filtered_errors[-limit:]

    def clear(self) -> None:
        self._error_log.clear()


# Global error handler instance
sis_error_handler = SISErrorHandler()


def handle_sis_errors(operation_type: str):
    """
    Decorator that records SIS errors raised by a coroutine before re-raising them.

    Args:
        operation_type: Type of operation being performed
    """
    def decorator(func: Callable) -> Callable:
        if not inspect.iscoroutinefunction(func):
            raise TypeError("handle_sis_errors only supports coroutine functions")

        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except SISError as e:
                e.operation_type = e.operation_type or operation_type
                sis_error_handler.log_error(e)
                raise
            except Exception as e:
                sis_error_handler.log_error(e, {'operation_type': operation_type})
                raise

        return async_wrapper

    return decorator
