"""Service layer components."""

from tutor_market_service.services.bid_manager import BidManager
from tutor_market_service.services.identity_provider import IdentityProvider
from tutor_market_service.services.market_store import MarketStore
from tutor_market_service.services.payment_manager import PaymentManager
from tutor_market_service.services.task_manager import TaskManager
from tutor_market_service.services.token_signer import TokenSigner
from tutor_market_service.services.token_validator import TokenValidator
from tutor_market_service.services.workflow_engine import WorkflowEngine

__all__ = [
    "BidManager",
    "IdentityProvider",
    "MarketStore",
    "PaymentManager",
    "TaskManager",
    "TokenSigner",
    "TokenValidator",
    "WorkflowEngine",
]
