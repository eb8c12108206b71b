from __future__ import annotations

import re
import secrets
import string
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .status import OrderStatus

__all__ = [
    "SCHEMA_VERSION",
    "ORDER_SUBFOLDERS",
    "OrderFiles",
    "OrderManifest",
    "generate_order_id",
    "customer_slug",
    "order_folder_name",
    "matches_order_folder",
    "year_month",
    "year_month_from_order_id",
]

SCHEMA_VERSION = "1.0"
ORDER_SUBFOLDERS = ("special", "general", "outputs", "logs")

_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
_SUFFIX_LEN = 6
_ORDER_ID_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})-(\d{2})(\d{2})_[A-Z0-9]{6}$")
_FOLDER_SEPARATOR = "__"

_TURKISH = str.maketrans(
    {
        "ş": "s", "Ş": "s",
        "ğ": "g", "Ğ": "g",
        "ı": "i", "İ": "i",
        "ö": "o", "Ö": "o",
        "ü": "u", "Ü": "u",
        "ç": "c", "Ç": "c",
    }
)
_NON_SLUG_RE = re.compile(r"[^a-z0-9]+")


class OrderFiles(BaseModel):
    # field name -> stored filename
    special: dict[str, str] = Field(default_factory=dict)
    general: list[str] = Field(default_factory=list)


class OrderManifest(BaseModel):
    """Contents of ``order.json``.

    ``order_id`` is immutable. ``status`` is the only field the workflow
    mutates (together with ``last_updated``); manifests written before the
    status field existed read back as ``submitted``. Unknown keys are kept so
    rewriting the manifest never drops data written by other tools.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    schema_version: str = SCHEMA_VERSION
    order_id: str
    customer_name: str
    customer_slug: str
    created_at: datetime
    fields: dict[str, str] = Field(default_factory=dict)
    files: OrderFiles = Field(default_factory=OrderFiles)
    status: OrderStatus = OrderStatus.submitted
    last_updated: datetime | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _missing_status_is_submitted(cls, value):
        return value or OrderStatus.submitted

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


def generate_order_id(now: datetime) -> str:
    """``YYYYMMDD-HHmm_XXXXXX`` from ``now`` plus six random ``A-Z0-9`` chars.

    Uniqueness is probabilistic: two orders in the same minute collide with
    probability 1 / 36**6.
    """
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LEN))
    return f"{now:%Y%m%d-%H%M}_{suffix}"


def customer_slug(customer_name: str | None) -> str:
    """URL-safe slug: Turkish letters folded to ASCII, lowercased, dash-separated.

    >>> customer_slug("Berat Ölmez")
    'berat-olmez'
    """
    if not customer_name:
        return "unknown"
    slug = customer_name.translate(_TURKISH).lower()
    slug = _NON_SLUG_RE.sub("-", slug).strip("-")
    return slug or "unknown"


def order_folder_name(order_id: str, slug: str) -> str:
    return f"{order_id}{_FOLDER_SEPARATOR}{slug}"


def matches_order_folder(folder_name: str, order_id: str) -> bool:
    """Exact match of an order folder against an order id.

    The id must be the whole name or the part before the ``__`` separator, so
    an id that happens to be a substring of another folder name never matches.
    """
    if not order_id:
        return False
    return folder_name == order_id or folder_name.startswith(order_id + _FOLDER_SEPARATOR)


def year_month(day: date) -> tuple[str, str]:
    """Folder names for the year and month levels, e.g. ``("2026", "02")``."""
    return f"{day.year:04d}", f"{day.month:02d}"


def year_month_from_order_id(order_id: str) -> tuple[str, str] | None:
    """Year/month folder names encoded in a well-formed order id, else None."""
    m = _ORDER_ID_RE.match(order_id or "")
    if not m:
        return None
    return m.group(1), m.group(2)
