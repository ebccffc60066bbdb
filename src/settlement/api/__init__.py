"""Settlement domain API package."""

from settlement.api.routes import transaction_router

__all__ = ["transaction_router"]
