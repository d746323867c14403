"""Application state management."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from tutor_market_service.clients.payment_provider_client import PaymentProviderClient
    from tutor_market_service.services.bid_manager import BidManager
    from tutor_market_service.services.identity_provider import IdentityProvider
    from tutor_market_service.services.market_store import MarketStore
    from tutor_market_service.services.payment_manager import PaymentManager
    from tutor_market_service.services.task_manager import TaskManager
    from tutor_market_service.services.workflow_engine import WorkflowEngine


@dataclass
class AppState:
    """Runtime application state."""

    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    store: MarketStore | None = None
    identity_provider: IdentityProvider | None = None
    workflow: WorkflowEngine | None = None
    task_manager: TaskManager | None = None
    bid_manager: BidManager | None = None
    payment_manager: PaymentManager | None = None
    payment_provider_client: PaymentProviderClient | None = None

    def __setattr__(self, name: str, value: Any) -> None:
        """Keep the PaymentManager's provider client in sync with the AppState field."""
        super().__setattr__(name, value)

        payment_manager = self.__dict__.get("payment_manager")
        if name == "payment_provider_client" and value is not None and payment_manager is not None:
            payment_manager.set_provider_client(value)
        elif name == "payment_manager" and value is not None:
            provider_client = self.__dict__.get("payment_provider_client")
            if provider_client is not None:
                value.set_provider_client(provider_client)

    @property
    def uptime_seconds(self) -> float:
        """Calculate uptime in seconds."""
        return (datetime.now(UTC) - self.start_time).total_seconds()

    @property
    def started_at(self) -> str:
        """ISO format start time."""
        return self.start_time.isoformat(timespec="seconds").replace("+00:00", "Z")


# Global application state container
_state_container: dict[str, AppState | None] = {"app_state": None}


def get_app_state() -> AppState:
    """Get the current application state."""
    app_state = _state_container["app_state"]
    if app_state is None:
        msg = "Application state not initialized"
        raise RuntimeError(msg)
    return app_state


def init_app_state() -> AppState:
    """Initialize application state. Called during startup."""
    app_state = AppState()
    _state_container["app_state"] = app_state
    return app_state


def reset_app_state() -> None:
    """Reset application state. Used in testing."""
    _state_container["app_state"] = None
