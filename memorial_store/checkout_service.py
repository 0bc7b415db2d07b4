"""
Checkout service: the submission pipeline that turns a completed wizard into
a persisted order and a payment redirect.
"""
import base64
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from memorial_store.config import Config
from memorial_store.exceptions import (
    NotFoundError,
    OrderAlreadySubmittedError,
    StorefrontException,
    SubmissionError,
)
from memorial_store.models import Order, OrderFormData, OrderItem, OrderStatus
from memorial_store.order_service import OrderService
from memorial_store.payment_gateway import CheckoutSession, get_gateway
from memorial_store.persistence import get_persistence_client
from memorial_store.schemas import CompleteForm, MemorialInfo
from memorial_store.wizard import SubmitResult

logger = logging.getLogger(__name__)


@dataclass
class Submission:
    """Result of a successful pipeline run"""
    order: Order
    order_items: List[OrderItem]
    checkout_session: CheckoutSession

    @property
    def redirect_url(self) -> str:
        return self.checkout_session.url


def serialize_form(form: CompleteForm, photo_urls: List[str]) -> OrderFormData:
    """Order-creation payload: dates as ISO timestamps, photos as public URLs"""
    info = form.memorial_info
    return OrderFormData.model_validate({
        "memorialInfo": {
            "fullName": info.full_name,
            "dob": info.dob.isoformat() if info.dob else None,
            "dop": info.dop.isoformat() if info.dop else None,
            "dom": info.dom.isoformat(),
            "photos": photo_urls,
        },
        "memorialKit": form.memorial_kit.model_dump(mode="json", by_alias=True),
        "theme": form.theme.model_dump(mode="json", by_alias=True),
        "format": form.format.model_dump(mode="json", by_alias=True),
    })


class CheckoutService:
    """Service for order submission"""

    def __init__(self, persistence=None, order_service: Optional[OrderService] = None, gateway=None):
        self.persistence = persistence or get_persistence_client()
        self.order_service = order_service or OrderService(self.persistence)
        self.gateway = gateway or get_gateway()

    def upload_photos(self, memorial_info: MemorialInfo) -> List[str]:
        """Upload every raw photo file; an empty photo set uploads nothing"""
        files = [
            (base64.b64decode(photo.file.data), photo.file.filename, photo.file.content_type)
            for photo in memorial_info.photos
            if photo.file is not None
        ]
        if not files:
            return []
        return self.persistence.upload_photos(files, folder=Config.PHOTO_FOLDER)

    def create_checkout_session(
        self,
        order_id: str,
        email: str,
        order_total,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None
    ) -> CheckoutSession:
        return self.gateway.create_checkout_session(
            order_id=order_id,
            email=email,
            order_total=order_total,
            success_url=success_url or Config.checkout_success_url(),
            cancel_url=cancel_url or Config.checkout_cancel_url()
        )

    def _cancel_order(self, order: Order) -> None:
        """Compensate for an order whose payment session could not be created"""
        try:
            self.persistence.update_order_status(order.id, OrderStatus.CANCELLED)
            logger.info(f"Order {order.id} cancelled after checkout session failure")
        except StorefrontException as e:
            logger.error(
                f"Could not cancel order {order.id}: {e}",
                extra={"order_id": order.id, "error_type": type(e).__name__},
                exc_info=True
            )

    def submit(self, form: CompleteForm) -> Submission:
        """
        Run the submission pipeline:
        1. Upload photos to object storage
        2. Create the order and its items
        3. Create a checkout session
        The caller redirects the browser to the session URL.

        Raises:
            SubmissionError: If any step fails; the cause is logged only
        """
        email = form.email.email
        order: Optional[Order] = None
        try:
            photo_urls = self.upload_photos(form.memorial_info)
            created = self.order_service.create_order(serialize_form(form, photo_urls), email=email)
            order = created.order

            try:
                session = self.create_checkout_session(order.id, email, order.total)
            except Exception:
                self._cancel_order(order)
                raise

        except Exception as e:
            logger.error(
                f"Failed to submit order: {type(e).__name__}: {e}",
                extra={
                    "order_id": order.id if order else None,
                    "error_type": type(e).__name__
                },
                exc_info=True
            )
            raise SubmissionError(order.id if order else None) from e

        logger.info(
            f"Checkout session created for order {order.id}",
            extra={"order_id": order.id, "session_id": session.session_id}
        )
        return Submission(order=order, order_items=created.order_items, checkout_session=session)

    def resume(self, order_id: str, email: str) -> Optional[Submission]:
        """
        Reopen payment for an order the session already created.

        Returns:
            Submission with a fresh checkout session for a PENDING order, or
            None when the order was cancelled or no longer exists

        Raises:
            OrderAlreadySubmittedError: If the order is paid or in fulfilment
            SubmissionError: If the checkout session cannot be created
        """
        try:
            order = self.persistence.get_order(order_id)
        except NotFoundError:
            logger.warning(f"Order {order_id} recorded on session no longer exists")
            return None

        if order.status == OrderStatus.CANCELLED:
            return None
        if order.status != OrderStatus.PENDING:
            raise OrderAlreadySubmittedError(order.id)

        try:
            session = self.create_checkout_session(order.id, order.email or email, order.total)
        except Exception as e:
            logger.error(
                f"Failed to reopen checkout: {type(e).__name__}: {e}",
                extra={"order_id": order.id, "error_type": type(e).__name__},
                exc_info=True
            )
            self._cancel_order(order)
            raise SubmissionError(order.id) from e

        logger.info(
            f"Checkout session reopened for order {order.id}",
            extra={"order_id": order.id, "session_id": session.session_id}
        )
        return Submission(
            order=order,
            order_items=self.persistence.get_order_items(order.id),
            checkout_session=session
        )

    def submit_wizard(self, state, orchestrator, store) -> Tuple[SubmitResult, Optional[Submission]]:
        """
        Validate every step and submit, holding the session's submission lock.
        A session that already holds a pending order gets a new checkout
        session for it instead of a second order.

        Returns:
            (SubmitResult, Submission or None when validation failed)

        Raises:
            OrderAlreadySubmittedError: If the session's order is already paid
        """
        token = store.acquire_submission_lock(state.session_id)
        try:
            result = orchestrator.submit_all(state)
            if not result.ok:
                return result, None

            order_id = store.get(state.session_id).order_id or state.order_id
            if order_id:
                submission = self.resume(order_id, result.form.email.email)
                if submission is not None:
                    state.order_id = submission.order.id
                    return result, submission

            submission = self.submit(result.form)
            state.order_id = submission.order.id
            store.save(state)
            return result, submission
        finally:
            store.release_submission_lock(state.session_id, token)
