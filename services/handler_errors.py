#!/usr/bin/env python3
"""
Sensu Puppet Handler - Error Types

Every failure the handler can surface derives from HandlerError. The process
entry point catches HandlerError, writes a single diagnostic line and exits
non-zero. Anything that is not a HandlerError is a bug and propagates.

Benign conditions (PuppetDB 404, Sensu DELETE 4xx) are NOT errors and never
raise.
"""

from enum import Enum
from typing import Any, Dict, Optional


class HandlerErrorCode(Enum):
    """Error categories reported by the handler."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INPUT_ERROR = "INPUT_ERROR"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    BACKEND_ERROR = "BACKEND_ERROR"


class HandlerError(Exception):
    """
    Base class for handler failures.

    Attributes:
        message: Human readable description
        code: HandlerErrorCode category
        details: Extra context (field name, URL, status code...)
    """

    code = HandlerErrorCode.CONFIGURATION_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "code": self.code.value,
            "details": self.details,
        }


class ConfigurationError(HandlerError):
    """Missing or invalid option, or unreadable certificate material."""

    code = HandlerErrorCode.CONFIGURATION_ERROR

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        all_details = details or {}
        if field:
            all_details["field"] = field
        super().__init__(message, all_details)


class InputError(HandlerError):
    """The event read from stdin is malformed."""

    code = HandlerErrorCode.INPUT_ERROR


class TransportError(HandlerError):
    """Connection, TLS or timeout failure talking to a backend."""

    code = HandlerErrorCode.TRANSPORT_ERROR

    def __init__(self, message: str, backend: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        all_details = details or {}
        if backend:
            all_details["backend"] = backend
        super().__init__(message, all_details)


class BackendError(HandlerError):
    """A backend answered with a status the handler cannot accept."""

    code = HandlerErrorCode.BACKEND_ERROR

    def __init__(
        self,
        message: str,
        backend: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        all_details = details or {}
        if backend:
            all_details["backend"] = backend
        if status_code is not None:
            all_details["status_code"] = status_code
        self.status_code = status_code
        super().__init__(message, all_details)
