from __future__ import annotations

import secrets

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from starlette.datastructures import UploadFile

from ..container import Services
from ..errors import InvalidError, NotFoundError
from ..logging_conf import get_logger
from ..service import Upload
from .models import (
    AuditEntryResponse,
    BulkFailureResponse,
    BulkStatusRequest,
    BulkStatusResponse,
    OrderCreatedResponse,
    OrderListResponse,
    OrderSummaryResponse,
    StatusChangeResponse,
    StatusUpdateRequest,
    TokenCheckResponse,
    TokenCreateRequest,
    TokenCreateResponse,
    TokenListResponse,
)

router = APIRouter()
logger = get_logger("api")

_basic = HTTPBasic(realm="Admin Panel")

ALLOWED_IMAGE_TYPES = frozenset(
    {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}
)
CUSTOMER_NAME_FIELD = "customer_name"
TOKEN_FIELD = "token"


def get_services(request: Request) -> Services:
    return request.app.state.services


def require_admin(
    credentials: HTTPBasicCredentials = Depends(_basic),
    services: Services = Depends(get_services),
) -> str:
    """HTTP Basic check against the configured admin credentials."""
    settings = services.settings
    ok_user = secrets.compare_digest(
        credentials.username.encode("utf-8"), (settings.admin_username or "").encode("utf-8")
    )
    ok_pass = settings.admin_password is not None and secrets.compare_digest(
        credentials.password.encode("utf-8"), settings.admin_password.encode("utf-8")
    )
    if not (ok_user and ok_pass):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error_code": "unauthorized", "error_message": "Invalid credentials"},
            headers={"WWW-Authenticate": 'Basic realm="Admin Panel"'},
        )
    return credentials.username


async def limit_order_submissions(
    request: Request, services: Services = Depends(get_services)
) -> None:
    """Count the submission against the caller's address before the form is parsed."""
    client = request.client.host if request.client else "unknown"
    services.order_limiter.hit(client)


# ------------------------
# Admin: tokens
# ------------------------


@router.get("/admin/tokens", response_model=TokenListResponse, summary="List every issued token")
async def list_tokens(
    _: str = Depends(require_admin), services: Services = Depends(get_services)
) -> TokenListResponse:
    return TokenListResponse(tokens=await services.tokens.get_all())


@router.post(
    "/admin/tokens",
    response_model=TokenCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Issue a single-use order link",
)
async def create_token(
    req: TokenCreateRequest,
    request: Request,
    _: str = Depends(require_admin),
    services: Services = Depends(get_services),
) -> TokenCreateResponse:
    link_base = services.settings.public_base_url or str(request.base_url).rstrip("/")
    token = await services.tokens.create(req.customer_name, req.ttl_days, link_base=link_base)
    record = await services.tokens.get(token)
    if record is None:  # pragma: no cover
        raise NotFoundError("token vanished after creation")
    return TokenCreateResponse(
        token=record.token,
        customer_name=record.customer_name,
        expires_at=record.expires_at,
        link=record.link,
        whatsapp_message=record.whatsapp_message,
    )


@router.delete(
    "/admin/tokens/{token}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Revoke a token (idempotent)",
)
async def delete_token(
    token: str, _: str = Depends(require_admin), services: Services = Depends(get_services)
):
    if not await services.tokens.delete(token):
        raise NotFoundError("Token not found")


# ------------------------
# Admin: orders
# ------------------------


@router.get("/admin/orders", response_model=OrderListResponse, summary="List orders, newest first")
async def list_orders(
    _: str = Depends(require_admin), services: Services = Depends(get_services)
) -> OrderListResponse:
    summaries = await services.workflow.list_orders()
    return OrderListResponse(
        items=[OrderSummaryResponse(**vars(s)) for s in summaries],
    )


@router.get(
    "/admin/orders/{order_id}/history",
    response_model=list[AuditEntryResponse],
    summary="Status change history of one order",
)
async def order_history(
    order_id: str, _: str = Depends(require_admin), services: Services = Depends(get_services)
) -> list[AuditEntryResponse]:
    entries = await services.workflow.history(order_id)
    return [AuditEntryResponse(**vars(e)) for e in entries]


@router.post(
    "/admin/orders/{order_id}/status",
    response_model=StatusChangeResponse,
    summary="Change the status of one order",
)
async def set_order_status(
    order_id: str,
    req: StatusUpdateRequest,
    _: str = Depends(require_admin),
    services: Services = Depends(get_services),
) -> StatusChangeResponse:
    change = await services.workflow.set_status(order_id, req.status, req.note)
    return StatusChangeResponse(**vars(change))


@router.post(
    "/admin/orders/bulk-status",
    response_model=BulkStatusResponse,
    summary="Change the status of several orders; partial success is normal",
)
async def bulk_order_status(
    req: BulkStatusRequest,
    _: str = Depends(require_admin),
    services: Services = Depends(get_services),
) -> BulkStatusResponse:
    result = await services.workflow.bulk_set_status(req.order_ids, req.status, req.note)
    return BulkStatusResponse(
        updated=[StatusChangeResponse(**vars(c)) for c in result.updated],
        failed=[BulkFailureResponse(**vars(f)) for f in result.failed],
    )


# ------------------------
# Public
# ------------------------


@router.get(
    "/api/tokens/{token}",
    response_model=TokenCheckResponse,
    summary="Check whether an order link can still be used",
)
async def check_token(token: str, services: Services = Depends(get_services)) -> TokenCheckResponse:
    result = await services.tokens.validate(token)
    data = result.token_data
    return TokenCheckResponse(
        valid=result.valid,
        reason=result.reason,
        customer_name=data.customer_name if data else None,
        order_id=data.order_id if data else None,
    )


@router.post(
    "/api/orders",
    response_model=OrderCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit an order (multipart form with images)",
)
async def submit_order(
    request: Request,
    _: None = Depends(limit_order_submissions),
    services: Services = Depends(get_services),
) -> OrderCreatedResponse:
    """Accept the order form.

    ``customer_name`` and ``token`` are reserved fields; every other text field
    goes into the manifest, every file into the order folder.
    """
    settings = services.settings
    form = await request.form(max_files=settings.max_upload_files)
    try:
        customer_name = ""
        token: str | None = None
        fields: dict[str, str] = {}
        uploads: list[Upload] = []
        total_bytes = 0
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                upload = await _read_upload(key, value, settings.max_upload_bytes)
                total_bytes += len(upload.content)
                if total_bytes > settings.max_request_bytes:
                    raise InvalidError(
                        f"Uploads exceed {settings.max_request_bytes // (1024 * 1024)} MB in total"
                    )
                uploads.append(upload)
            elif key == CUSTOMER_NAME_FIELD:
                customer_name = value
            elif key == TOKEN_FIELD:
                token = value.strip() or None
            else:
                fields[key] = value
    finally:
        await form.close()

    manifest = await services.intake.submit(customer_name, fields, uploads, token=token)
    return OrderCreatedResponse(
        order_id=manifest.order_id,
        message=f"Order created. Order number: {manifest.order_id}",
    )


async def _read_upload(field_name: str, upload: UploadFile, max_bytes: int) -> Upload:
    content_type = (upload.content_type or "").lower()
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise InvalidError(
            f"Invalid file type {content_type or 'unknown'!s}; only JPG, PNG, GIF and WebP images are accepted"
        )
    content = await upload.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise InvalidError(f"File {upload.filename} exceeds {max_bytes // (1024 * 1024)} MB")
    return Upload(
        field_name=field_name,
        filename=upload.filename or field_name,
        content=content,
        content_type=content_type,
    )
