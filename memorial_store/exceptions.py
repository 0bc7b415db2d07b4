"""
Custom exceptions for the memorial storefront.
"""
from typing import Optional


class StorefrontException(Exception):
    """Base exception for storefront operations"""
    pass


class ValidationError(StorefrontException):
    """Raised when a request cannot be applied to the wizard"""
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(StorefrontException):
    """Raised when a read finds no matching row"""
    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found: {identifier}")


class SessionNotFoundError(StorefrontException):
    """Raised when a wizard session does not exist or has expired"""
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Wizard session not found: {session_id}")


class PersistenceError(StorefrontException):
    """Raised when the hosted database or object storage rejects a request.

    The service's own message is kept verbatim.
    """
    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.code = code
        super().__init__(message)


class ServiceUnavailableError(StorefrontException):
    """Raised when a backing service cannot be reached"""
    pass


class CatalogLookupError(StorefrontException):
    """Raised when an order item references a product missing from the catalog"""
    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found in catalog: {product_id}")


class PaymentError(StorefrontException):
    """Raised when the payment provider cannot create a checkout session"""
    pass


class PaymentConfigurationError(PaymentError):
    """Raised when no usable payment provider is configured"""
    pass


class WebhookError(StorefrontException):
    """Raised when a webhook delivery must be rejected"""
    status_code = 400


class WebhookSignatureError(WebhookError):
    """Raised when a webhook payload fails signature verification"""
    status_code = 400


class MissingOrderIdError(WebhookError):
    """Raised when a completed checkout carries no order id"""
    status_code = 400

    def __init__(self):
        super().__init__("No order_id in metadata")


class SubmissionInProgressError(StorefrontException):
    """Raised when an order submission is already running for a session"""
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__("An order submission is already in progress")


class OrderAlreadySubmittedError(StorefrontException):
    """Raised when a session's order is already paid or being fulfilled"""
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} has already been submitted")


class SubmissionError(StorefrontException):
    """Raised when the submission pipeline aborts"""
    USER_MESSAGE = "Failed to submit order. Please try again."

    def __init__(self, order_id: Optional[str] = None):
        self.order_id = order_id
        super().__init__(self.USER_MESSAGE)


class RedisConnectionError(StorefrontException):
    """Raised when Redis connection fails"""
    pass
