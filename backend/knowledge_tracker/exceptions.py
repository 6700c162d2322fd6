"""Custom exceptions for the knowledge tracker."""

from typing import Any, Optional


class KnowledgeTrackerError(Exception):
    """Base exception for the knowledge tracker."""

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class InvalidResultError(KnowledgeTrackerError):
    """A search-result record could not be turned into a knowledge node."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.field = field


class PersistenceError(KnowledgeTrackerError):
    """Key-value backend read/write errors."""

    def __init__(
        self,
        message: str,
        key: str,
        context: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.key = key
