from __future__ import annotations

import asyncio

from ..domain.clock import Clock, utc_now
from ..domain.tokens import (
    DEFAULT_TTL_DAYS,
    TokenRecord,
    ValidationReason,
    ValidationResult,
    evaluate_token,
    is_token_shape,
    new_token_record,
)
from ..errors import ConflictError, DeletedError, ExpiredError, InvalidError, NotFoundError
from ..logging_conf import get_logger
from ..store import TokenStore

__all__ = ["TokenLifecycleManager", "invitation_message", "order_link"]

logger = get_logger("service.tokens")


def order_link(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/o/{token}"


def invitation_message(customer_name: str, link: str, ttl_days: int = DEFAULT_TTL_DAYS) -> str:
    """WhatsApp-ready invitation text sent to the customer with their link."""
    return (
        f"Merhaba {customer_name},\n\n"
        "📖 Anı Defteri siparişinizi oluşturmak için aşağıdaki linke tıklayın:\n\n"
        f"{link}\n\n"
        f"ℹ️ Bu link size özeldir ve {ttl_days} gün boyunca aktiftir.\n\n"
        "📸 En güzel fotoğraflarınızı ve anılarınızı buradan kolayca yükleyebilirsiniz.\n"
        "📱 Herhangi bir noktada zorlanırsanız, WhatsApp üzerinden bize yazmanız yeterli.\n\n"
        "🔒 KVKK Notu: Yüklediğiniz tüm veriler güvenli olarak saklanır ve sadece sipariş "
        "işleme amacıyla kullanılır.\n\n"
        "Teşekkürler! ❤️"
    )


def _short(token: str) -> str:
    return token[:8] + "…" if len(token) > 8 else token


class TokenLifecycleManager:
    """Create, validate, consume and revoke capability tokens.

    Every mutation reads the whole collection, changes it and writes it back
    while holding ``self._lock``, so concurrent requests never lose an update
    and ``mark_used``/``consume`` flip ``used`` exactly once per token.
    """

    def __init__(
        self,
        store: TokenStore,
        *,
        clock: Clock = utc_now,
        default_ttl_days: int = DEFAULT_TTL_DAYS,
    ) -> None:
        self._store = store
        self._clock = clock
        self._default_ttl_days = default_ttl_days
        self._lock = asyncio.Lock()

    async def create(
        self,
        customer_name: str,
        ttl_days: int | None = None,
        *,
        link_base: str | None = None,
    ) -> str:
        """Issue a new token and return it.

        With ``link_base`` the record also stores the customer link and the
        invitation message built from it.
        """
        name = (customer_name or "").strip()
        if not name:
            raise InvalidError("customer name is required")
        ttl = self._default_ttl_days if ttl_days is None else ttl_days
        if ttl < 1:
            raise InvalidError("ttl_days must be at least 1")

        record = new_token_record(name, now=self._clock(), ttl_days=ttl)
        if link_base:
            record.link = order_link(link_base, record.token)
            record.whatsapp_message = invitation_message(name, record.link, ttl)

        async with self._lock:
            records = await self._store.read_all()
            records.append(record)
            await self._store.replace_all(records)

        logger.info(
            "token.create",
            extra={
                "event": "token_create",
                "token": _short(record.token),
                "customer_name": name,
                "expires_at": record.expires_at,
            },
        )
        return record.token

    async def get(self, token: str) -> TokenRecord | None:
        for record in await self._store.read_all():
            if record.token == token:
                return record
        return None

    async def get_all(self) -> list[TokenRecord]:
        return await self._store.read_all()

    async def validate(self, token: str) -> ValidationResult:
        """Report whether ``token`` can be redeemed now.

        Never raises for business outcomes; malformed tokens report
        ``not_found``.
        """
        record = await self.get(token) if is_token_shape(token) else None
        return evaluate_token(record, self._clock())

    async def mark_used(self, token: str, order_id: str) -> bool:
        """Bind ``order_id`` and flip ``used``; True only for the caller that flipped it.

        Unknown and already-used tokens return False and leave the record as is.
        """
        async with self._lock:
            records = await self._store.read_all()
            record = next((r for r in records if r.token == token), None)
            if record is None:
                return False
            if record.used:
                logger.warning(
                    "token.double_use",
                    extra={
                        "event": "token_double_use",
                        "token": _short(token),
                        "bound_order_id": record.order_id,
                        "rejected_order_id": order_id,
                    },
                )
                return False
            record.used = True
            record.used_at = self._clock()
            record.order_id = order_id
            await self._store.replace_all(records)

        logger.info(
            "token.used",
            extra={"event": "token_used", "token": _short(token), "order_id": order_id},
        )
        return True

    async def consume(self, token: str, order_id: str) -> TokenRecord:
        """Validate and mark used in one critical section.

        Raises:
            NotFoundError, DeletedError, ConflictError (already used), ExpiredError.
        """
        async with self._lock:
            records = await self._store.read_all()
            record = next((r for r in records if r.token == token), None)
            now = self._clock()
            result = evaluate_token(record, now)
            match result.reason:
                case None:
                    pass
                case ValidationReason.not_found:
                    raise NotFoundError("token not found")
                case ValidationReason.deleted:
                    raise DeletedError("token has been revoked")
                case ValidationReason.already_used:
                    raise ConflictError(f"token already used for order {record.order_id}")
                case ValidationReason.expired:
                    raise ExpiredError("token has expired")
            record.used = True
            record.used_at = now
            record.order_id = order_id
            await self._store.replace_all(records)

        logger.info(
            "token.consumed",
            extra={"event": "token_consumed", "token": _short(token), "order_id": order_id},
        )
        return record.model_copy()

    async def delete(self, token: str) -> bool:
        """Soft-revoke. Idempotent; False only when the token is unknown."""
        async with self._lock:
            records = await self._store.read_all()
            record = next((r for r in records if r.token == token), None)
            if record is None:
                return False
            if record.deleted:
                return True
            record.deleted = True
            record.deleted_at = self._clock()
            await self._store.replace_all(records)

        logger.info("token.deleted", extra={"event": "token_deleted", "token": _short(token)})
        return True
