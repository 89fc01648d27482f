"""Exceptions translated into JSON error responses by the HTTP layer."""
from __future__ import annotations

from typing import Any, Dict, Optional


class DescriberError(Exception):
    """A failure with a client-facing message and an HTTP status."""

    def __init__(
        self,
        status_code: int,
        message: str,
        debug: Optional[Dict[str, Any]] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.debug = debug
        self.code = code

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        if self.debug is not None:
            payload["debug"] = self.debug
        if self.code:
            payload["code"] = self.code
        return payload


class StoreUnavailableError(DescriberError):
    """The settings database could not be opened or initialized."""

    def __init__(self, message: str = "Database module failed to load") -> None:
        super().__init__(500, message, code="DB_INIT_ERROR")


class UploadError(DescriberError):
    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(status_code, message)

    def to_payload(self) -> Dict[str, Any]:
        return {"success": False, "error": self.message}
