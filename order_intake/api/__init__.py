"""HTTP surface: admin token/order routes and the public order form endpoints."""
from .routes import router

__all__ = ["router"]
