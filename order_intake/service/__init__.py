"""Use-cases built on the domain types and the storage layer."""
from .audit import AuditLogger
from .folders import FolderResolver, OrderHierarchy
from .ratelimit import FixedWindowLimiter
from .submission import OrderIntake, Upload
from .tokens import TokenLifecycleManager
from .workflow import BulkFailure, BulkResult, OrderSummary, OrderWorkflow, StatusChange

__all__ = [
    "AuditLogger",
    "BulkFailure",
    "BulkResult",
    "FixedWindowLimiter",
    "FolderResolver",
    "OrderHierarchy",
    "OrderIntake",
    "OrderSummary",
    "OrderWorkflow",
    "StatusChange",
    "TokenLifecycleManager",
    "Upload",
]
