"""
Observability package - logging and tracing setup.
"""

from .config import StructuredFormatter, setup_observability, setup_structured_logging

__all__ = [
    "StructuredFormatter",
    "setup_observability",
    "setup_structured_logging"
]
