"""Pure domain types and helpers: tokens, order status, manifests, audit entries.

Nothing in here performs I/O, so the services and the tests can share them
freely.
"""
__all__ = ["audit", "clock", "orders", "status", "tokens"]
