"""API routers."""

from tutor_market_service.routers import auth, bids, health, payments, tasks

__all__ = ["auth", "bids", "health", "payments", "tasks"]
