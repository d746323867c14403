"""HTTP clients for external service communication."""

from tutor_market_service.clients.payment_provider_client import PaymentProviderClient

__all__ = ["PaymentProviderClient"]
