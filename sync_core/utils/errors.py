# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Exception types and remote failure classification.
"""

import asyncio
from typing import Any, Dict, Optional

from models.enums import ErrorKind


# PostgREST "relation not found" codes and the Postgres undefined_table code
MISSING_TABLE_CODES = {"PGRST116", "PGRST205", "42P01"}

# Postgres integrity_constraint_violation class (unique, foreign key, ...)
CONSTRAINT_CODE_PREFIX = "23"


class SyncException(Exception):
    """Base class for sync core exceptions."""

    def __init__(self, message: str, error_type: str = "sync-error"):
        super().__init__(message)
        self.message = message
        self.error_type = error_type


class ConfigurationException(SyncException):
    """Exception for missing or invalid configuration."""

    def __init__(self, message: str):
        super().__init__(message, "configuration-error")


class RemoteStoreError(SyncException):
    """Structured failure returned by the remote store."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status: Optional[int] = None,
        details: Optional[str] = None,
        hint: Optional[str] = None
    ):
        super().__init__(message, "remote-store-error")
        self.code = code
        self.status = status
        self.details = details
        self.hint = hint

    @property
    def kind(self) -> ErrorKind:
        return classify_error(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "status": self.status,
            "details": self.details,
            "hint": self.hint
        }


class RemoteTimeoutError(RemoteStoreError):
    """Raised when a remote request does not settle within its timeout."""

    def __init__(self, message: str, timeout: Optional[float] = None):
        super().__init__(message)
        self.error_type = "remote-timeout"
        self.timeout = timeout


def classify_error(error: BaseException) -> ErrorKind:
    """
    Classify a remote failure for the retry policy.

    Args:
        error: Exception raised by a remote store call

    Returns:
        ErrorKind for the failure
    """
    if isinstance(error, (RemoteTimeoutError, asyncio.TimeoutError, TimeoutError)):
        return ErrorKind.TIMEOUT

    if isinstance(error, RemoteStoreError):
        if error.code in MISSING_TABLE_CODES:
            return ErrorKind.MISSING_TABLE
        if error.code and error.code.startswith(CONSTRAINT_CODE_PREFIX):
            return ErrorKind.VALIDATION
        if error.status == 404 or "does not exist" in (error.message or ""):
            return ErrorKind.MISSING_TABLE

    return ErrorKind.OTHER


class RecordNotFoundException(SyncException):
    """Exception for records missing from the local snapshot."""

    def __init__(self, message: str):
        super().__init__(message, "record-not-found")


class DuplicateRecordException(SyncException):
    """Exception for identifiers already present in the local snapshot."""

    def __init__(self, message: str):
        super().__init__(message, "duplicate-record")
