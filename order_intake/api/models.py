from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ..domain.status import OrderStatus
from ..domain.tokens import TokenRecord, ValidationReason


class TokenCreateRequest(BaseModel):
    """Admin request for a new customer link."""
    customer_name: str = Field(..., min_length=1)
    ttl_days: Optional[int] = Field(None, ge=1, le=365)


class TokenCreateResponse(BaseModel):
    token: str
    customer_name: str
    expires_at: datetime
    link: Optional[str] = None
    whatsapp_message: Optional[str] = None


class TokenListResponse(BaseModel):
    """Every issued token, serialized as stored (camelCase keys)."""
    tokens: list[TokenRecord]


class TokenCheckResponse(BaseModel):
    """Public view of a token: enough to pre-fill the order form or explain a rejection."""
    valid: bool
    reason: Optional[ValidationReason] = None
    customer_name: Optional[str] = None
    order_id: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    # Plain string so unknown values surface as the service's "invalid" error.
    status: str
    note: Optional[str] = None


class BulkStatusRequest(BaseModel):
    order_ids: list[str]
    status: str
    note: Optional[str] = None


class StatusChangeResponse(BaseModel):
    order_id: str
    old_status: OrderStatus
    new_status: OrderStatus


class BulkFailureResponse(BaseModel):
    order_id: str
    error_code: str
    error_message: str


class BulkStatusResponse(BaseModel):
    updated: list[StatusChangeResponse]
    failed: list[BulkFailureResponse]


class OrderSummaryResponse(BaseModel):
    order_id: str
    customer_name: str
    created_at: datetime
    status: OrderStatus
    folder_name: str
    folder_id: str
    folder_url: str
    file_counts: dict[str, int]
    fields: dict[str, str]


class OrderListResponse(BaseModel):
    items: list[OrderSummaryResponse]


class AuditEntryResponse(BaseModel):
    timestamp: datetime
    old_status: str
    new_status: str
    note: Optional[str] = None


class OrderCreatedResponse(BaseModel):
    order_id: str
    message: str
