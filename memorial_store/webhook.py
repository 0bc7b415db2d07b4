"""
Payment webhook processing.

Called by the payment provider after checkout, outside any wizard session;
the order id in the session metadata is the only link back to the order.
"""
import logging
from typing import Any, Dict, Optional, Union

from memorial_store.exceptions import MissingOrderIdError, WebhookSignatureError
from memorial_store.models import OrderStatus
from memorial_store.payment_gateway import get_gateway
from memorial_store.persistence import get_persistence_client

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
PAYMENT_FAILED = "payment_intent.payment_failed"


class WebhookHandler:
    """Verifies provider events and applies them to orders"""

    def __init__(self, persistence=None, gateway=None):
        self.persistence = persistence or get_persistence_client()
        self.gateway = gateway or get_gateway()

    def handle(self, payload: Union[bytes, str], signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify and dispatch one webhook delivery.

        Raises:
            WebhookSignatureError: Missing or invalid signature
            MissingOrderIdError: Completed checkout without an order id
            NotFoundError: The referenced order does not exist
            PersistenceError: The status update was rejected
        """
        if not signature:
            raise WebhookSignatureError("No signature")

        event = self.gateway.construct_event(payload, signature)
        event_type = event.get("type")
        logger.info(f"Received event: {event_type}", extra={"event_type": event_type, "event_id": event.get("id")})

        data_object = (event.get("data") or {}).get("object") or {}

        if event_type == CHECKOUT_COMPLETED:
            order_id = (data_object.get("metadata") or {}).get("order_id")
            if not order_id:
                logger.error("No order_id in session metadata", extra={"event_id": event.get("id")})
                raise MissingOrderIdError()

            self.persistence.update_order_status(order_id, OrderStatus.PAID)
            logger.info(f"Order {order_id} marked as PAID", extra={"order_id": order_id})
            return {"received": True, "orderId": order_id, "status": OrderStatus.PAID.value}

        if event_type == PAYMENT_FAILED:
            logger.info(f"Payment failed: {data_object.get('id')}", extra={"event_type": event_type})
        else:
            logger.info(f"Unhandled event type: {event_type}", extra={"event_type": event_type})
        return {"received": True}
