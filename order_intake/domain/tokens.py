from __future__ import annotations

import re
import secrets
from datetime import UTC, datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

__all__ = [
    "TOKEN_BYTES",
    "DEFAULT_TTL_DAYS",
    "TokenRecord",
    "ValidationReason",
    "ValidationResult",
    "generate_token",
    "is_token_shape",
    "new_token_record",
    "evaluate_token",
]

TOKEN_BYTES = 16  # 128 bits, rendered as 32 hex chars
DEFAULT_TTL_DAYS = 7

_TOKEN_RE = re.compile(r"^[0-9a-f]{32}$")


class TokenRecord(BaseModel):
    """One capability link as persisted in the token document.

    Field names serialize in camelCase (``customerName``, ``expiresAt`` ...).
    ``expires_at`` never changes after creation; ``order_id`` is bound at most
    once; ``deleted`` only goes false -> true.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    token: str
    customer_name: str
    created_at: datetime
    expires_at: datetime
    used: bool = False
    used_at: datetime | None = None
    order_id: str | None = None
    link: str | None = None
    whatsapp_message: str | None = None
    deleted: bool = False
    deleted_at: datetime | None = None

    @field_validator("created_at", "expires_at", "used_at", "deleted_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        # hand-edited documents may carry timestamps without an offset
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class ValidationReason(str, Enum):
    not_found = "not_found"
    deleted = "deleted"
    already_used = "already_used"
    expired = "expired"


class ValidationResult(BaseModel):
    valid: bool
    reason: ValidationReason | None = None
    token_data: TokenRecord | None = None


def generate_token() -> str:
    """Fresh opaque token: 128 random bits, lowercase hex."""
    return secrets.token_hex(TOKEN_BYTES)


def is_token_shape(value: str) -> bool:
    return isinstance(value, str) and bool(_TOKEN_RE.match(value))


def new_token_record(
    customer_name: str, *, now: datetime, ttl_days: int = DEFAULT_TTL_DAYS
) -> TokenRecord:
    return TokenRecord(
        token=generate_token(),
        customer_name=customer_name,
        created_at=now,
        expires_at=now + timedelta(days=ttl_days),
    )


def evaluate_token(record: TokenRecord | None, now: datetime) -> ValidationResult:
    """Apply the validation precedence to a (possibly missing) record.

    Precedence: not_found > deleted > already_used > expired, so a token that
    was both used and revoked always reports ``deleted``.
    """
    if record is None:
        return ValidationResult(valid=False, reason=ValidationReason.not_found)
    if record.deleted:
        return ValidationResult(valid=False, reason=ValidationReason.deleted, token_data=record)
    if record.used:
        return ValidationResult(
            valid=False, reason=ValidationReason.already_used, token_data=record
        )
    if record.is_expired(now):
        return ValidationResult(valid=False, reason=ValidationReason.expired, token_data=record)
    return ValidationResult(valid=True, token_data=record)
