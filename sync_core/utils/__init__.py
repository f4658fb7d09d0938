# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Utilities package - error taxonomy and retry policy.
"""

from .errors import (
    SyncException,
    ConfigurationException,
    RemoteStoreError,
    RemoteTimeoutError,
    RecordNotFoundException,
    DuplicateRecordException,
    classify_error
)
from .retry import RetryPolicy

__all__ = [
    "SyncException",
    "ConfigurationException",
    "RemoteStoreError",
    "RemoteTimeoutError",
    "RecordNotFoundException",
    "DuplicateRecordException",
    "classify_error",
    "RetryPolicy"
]
