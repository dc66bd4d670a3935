"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""

from uuid import UUID


class GatewayError(Exception):
    """Base exception for all gateway errors."""

    pass


class TokenNotFoundError(GatewayError):
    """Raised when a token id doesn't exist."""

    def __init__(self, token_id: UUID) -> None:
        self.token_id = token_id
        super().__init__(f"Token not found: {token_id}")


class TokenCodeCollisionError(GatewayError):
    """Raised when a generated code already exists in the store."""

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f"Token code already in use: {code}")


class TokenIssuanceError(GatewayError):
    """Raised when a token could not be created."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Token issuance failed: {message}")


class NetworkNotFoundError(GatewayError):
    """Raised when a network id doesn't exist."""

    def __init__(self, network_id: UUID) -> None:
        self.network_id = network_id
        super().__init__(f"Network not found: {network_id}")


class NetworkConflictError(GatewayError):
    """Raised when a network name or SSID is already taken."""

    def __init__(self, field: str, value: str) -> None:
        self.field = field
        self.value = value
        super().__init__(f"A network with {field} '{value}' already exists")


class DataIntegrityError(GatewayError):
    """Raised when data integrity constraint violated."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Data integrity error: {message}")


class PurchaseValidationError(GatewayError):
    """Raised when a purchase request is inconsistent with the selected plan."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class PurchaseNotFoundError(GatewayError):
    """Raised when a payment reference doesn't exist."""

    def __init__(self, reference: str) -> None:
        self.reference = reference
        super().__init__(f"Purchase not found: {reference}")


class PaymentProviderNotConfiguredError(GatewayError):
    """Raised when the requested payment method has no configured provider."""

    def __init__(self, method: str) -> None:
        self.method = method
        super().__init__(f"Payment method '{method}' is not configured")


class PaymentProviderError(GatewayError):
    """Raised when payment provider operation fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Payment provider error: {message}")


class WebhookVerificationError(GatewayError):
    """Raised when webhook verification fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Webhook verification error: {message}")


class SmsDeliveryError(GatewayError):
    """Raised when an SMS provider rejects or fails to send a message."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        self.message = message
        super().__init__(f"SMS delivery via {provider} failed: {message}")


class AuthenticationError(GatewayError):
    """Raised when authentication fails (wrong admin password, bad credential)."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Authentication failed: {message}")
