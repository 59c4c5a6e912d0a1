"""Error taxonomy shared by the core modules and the HTTP layer."""

from __future__ import annotations

from typing import Any


class RadarError(Exception):
    """Base exception. `status_code` is the HTTP status the API answers with."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message}


class Unauthenticated(RadarError):
    """No resolvable identity on the request."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class Forbidden(RadarError):
    status_code = 403


class ValidationError(RadarError):
    """Missing or malformed input."""

    status_code = 400


def expect_str(value: Any, field: str) -> str | None:
    """Stripped string, or None when absent or blank. Anything else is a 400."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    return value.strip() or None


class NotFound(RadarError):
    """Unknown id, or an id owned by another account."""

    status_code = 404

    def __init__(self, message: str = "Not found") -> None:
        super().__init__(message)


class QuotaExceeded(RadarError):
    """Per-account source cap reached."""

    status_code = 400

    def __init__(self, limit: int, count: int) -> None:
        super().__init__(
            f"Source limit reached: you can monitor up to {limit} sources "
            f"(currently {count}). Remove a source to add another."
        )
        self.limit = limit
        self.count = count

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "limit": self.limit, "count": self.count}


class UpstreamFailure(RadarError):
    """A third-party call (AI, email, social, network fetch) failed."""

    status_code = 500

    def __init__(self, message: str, service: str = "upstream") -> None:
        super().__init__(message)
        self.service = service

    def to_dict(self) -> dict[str, Any]:
        # Provider error text stays in the logs
        return {"error": "An external service is unavailable. Please try again."}
