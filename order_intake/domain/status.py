from __future__ import annotations

from enum import Enum

from ..errors import InvalidError

__all__ = ["OrderStatus", "parse_status"]


class OrderStatus(str, Enum):
    """Production pipeline stages, in pipeline order."""

    submitted = "submitted"
    psd_done = "psd_done"
    preview_sent = "preview_sent"
    approved = "approved"
    print_done = "print_done"

    @property
    def rank(self) -> int:
        match self:
            case OrderStatus.submitted:
                return 0
            case OrderStatus.psd_done:
                return 1
            case OrderStatus.preview_sent:
                return 2
            case OrderStatus.approved:
                return 3
            case OrderStatus.print_done:
                return 4

    def is_regression_from(self, previous: OrderStatus) -> bool:
        """True when moving to this status goes backwards in the pipeline."""
        return self.rank < previous.rank


def parse_status(value: OrderStatus | str) -> OrderStatus:
    """Coerce a raw value into the closed status set.

    Raises:
        InvalidError: if the value is not one of the five known statuses.
    """
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise InvalidError(f"Invalid status {value!r}. Must be one of: {allowed}") from None
