from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass
class StepResult:
    """Outcome of one smoke step."""

    name: str
    ok: bool
    elapsed_ms: float
    detail: str | None = None


@dataclass(frozen=True)
class FixtureUpload:
    """One image sent with the smoke order, and the form field it goes under."""

    field_name: str
    path: Path
    content_type: str


class SmokeError(RuntimeError):
    """Raised when the smoke flow cannot proceed (e.g., health never ready)."""


class RequestError(SmokeError):
    """Raised when a request keeps failing after retries."""


class UnexpectedResponse(SmokeError):
    """Raised when the server answers with a status code the step did not expect."""

    def __init__(self, method: str, url: str, status_code: int, body: str) -> None:
        super().__init__(f"{method} {url} returned {status_code}: {body[:300]}")
        self.status_code = status_code


class CheckFailed(SmokeError):
    """Raised when a response parses fine but its content is wrong."""
