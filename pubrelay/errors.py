from __future__ import annotations

from typing import Any, Optional, Sequence


class RelayError(Exception):
    """Base error rendered as ``{"error": message}`` with ``status_code``."""

    status_code = 500

    def __init__(self, message: str, urls: Optional[Sequence[str]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.urls = list(urls) if urls is not None else None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.urls is not None:
            body["url"] = self.urls
        return body


class BodyReadError(RelayError):
    status_code = 500


class DecodeError(RelayError):
    status_code = 400


class InvalidURLError(RelayError):
    status_code = 400

    def __init__(self, message: str = "URL is not valid") -> None:
        super().__init__(message)


class AlreadyRegisteredError(RelayError):
    status_code = 403

    def __init__(self, message: str = "URL is already registered") -> None:
        super().__init__(message)


class NotRegisteredError(RelayError):
    status_code = 404

    def __init__(self, message: str = "URL is not registered") -> None:
        super().__init__(message)


class DeliveryError(RelayError):
    status_code = 409

    def __init__(self, urls: Sequence[str], message: str = "Cannot publish to URLs") -> None:
        super().__init__(message, urls)
