"""Order intake service: capability links, order status workflow, remote folder layout.

Exposes the installed distribution version as ``__version__``.
"""
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("order-intake")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"
