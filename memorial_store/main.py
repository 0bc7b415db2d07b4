"""
FastAPI application for the memorial customization storefront.
"""
import logging
import time
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, File, Header, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from memorial_store.checkout_service import CheckoutService
from memorial_store.config import Config
from memorial_store.exceptions import (
    CatalogLookupError,
    NotFoundError,
    OrderAlreadySubmittedError,
    PaymentConfigurationError,
    PaymentError,
    PersistenceError,
    RedisConnectionError,
    ServiceUnavailableError,
    SessionNotFoundError,
    SubmissionError,
    SubmissionInProgressError,
    ValidationError,
    WebhookError,
)
from memorial_store.middleware import RequestLoggingMiddleware
from memorial_store.models import (
    AddKitItemRequest,
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    CreateOrderRequest,
    CreateOrderResponse,
    CreateProfileRequest,
    CreateReviewRequest,
    Profile,
    Review,
    SubmitResponse,
    UpdateKitItemRequest,
)
from memorial_store.order_service import OrderService
from memorial_store.persistence import get_persistence_client
from memorial_store.redis_client import close_redis_client, get_redis_client
from memorial_store.session_store import WizardSessionStore
from memorial_store.steps import WizardStep
from memorial_store.webhook import WebhookHandler
from memorial_store.wizard import WizardOrchestrator, WizardState

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Memorial Store API",
    description="Memorial customization wizard, orders, and payment webhook",
    version="1.0.0"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)


@app.on_event("shutdown")
def close_connections():
    close_redis_client()


orchestrator = WizardOrchestrator()

_session_store: Optional[WizardSessionStore] = None


def get_session_store() -> WizardSessionStore:
    """Get or create the wizard session store (singleton)"""
    global _session_store
    if _session_store is None:
        _session_store = WizardSessionStore()
    return _session_store


def set_session_store(store: Optional[WizardSessionStore]) -> None:
    """Override the wizard session store (useful for tests)"""
    global _session_store
    _session_store = store


def _state_view(state: WizardState) -> Dict[str, Any]:
    """Session state for the client, without raw photo content"""
    forms = {key: dict(values) for key, values in state.forms.items()}
    info = forms.get("memorialInfo", {})
    info["photos"] = [
        {
            "id": photo.get("id"),
            "filename": (photo.get("file") or {}).get("filename"),
            "preview": photo.get("preview"),
        }
        for photo in info.get("photos") or []
    ]
    return {
        "sessionId": state.session_id,
        "stepIndex": state.step_index,
        "step": state.current_step.value,
        "isFirstStep": state.is_first_step,
        "isLastStep": state.is_last_step,
        "forms": forms,
        "completedSteps": sorted(state.composite),
        "orderId": state.order_id,
    }


# Health check endpoint
@app.get("/health")
def health_check():
    """
    Health check endpoint.
    Always returns HTTP 200 if the application is running; reports Redis
    connectivity without failing on it.
    """
    redis_status = "healthy"
    redis_latency_ms = None

    try:
        redis_client = get_redis_client()
        ping_start = time.time()
        if not redis_client.ping():
            redis_status = "unhealthy"
        redis_latency_ms = round((time.time() - ping_start) * 1000, 2)
    except RedisConnectionError:
        redis_status = "unhealthy"

    return JSONResponse(
        status_code=200,
        content={
            "status": "healthy",
            "service": Config.PROJECT_NAME,
            "redis": {
                "status": redis_status,
                "latency_ms": redis_latency_ms
            },
            "timestamp": time.time()
        }
    )


# Catalog endpoints
@app.get("/catalog/product-types")
def list_product_types():
    return get_persistence_client().get_product_types()


@app.get("/catalog/product-types/{type_id}/products")
def list_products_by_type(type_id: str):
    return get_persistence_client().get_products_by_type(type_id)


@app.get("/catalog/products/{product_id}")
def get_product(product_id: str):
    """Product with sizes, finishes, themes, formats, and preset texts"""
    return get_persistence_client().get_product_with_options(product_id)


@app.get("/catalog/themes")
def list_themes():
    return get_persistence_client().get_themes()


@app.get("/catalog/formats")
def list_formats():
    return get_persistence_client().get_formats()


# Wizard endpoints
@app.post("/wizard", status_code=201)
def start_wizard():
    """Start a new customization wizard session"""
    state = get_session_store().create()
    return _state_view(state)


@app.get("/wizard/{session_id}")
def get_wizard(session_id: str):
    return _state_view(get_session_store().get(session_id))


@app.get("/wizard/{session_id}/step")
def get_wizard_step(session_id: str, step: Optional[WizardStep] = None):
    """
    Current (or requested) step with the catalog data it needs.
    Theme and format steps pre-select the first entry when nothing is chosen.
    """
    store = get_session_store()
    state = store.get(session_id)
    payload = orchestrator.load_step(state, step)
    store.save(state)
    return payload


@app.put("/wizard/{session_id}/forms/{form_key}")
def update_wizard_form(session_id: str, form_key: str, values: Dict[str, Any] = Body(...)):
    store = get_session_store()
    state = store.get(session_id)
    form = orchestrator.update_form(state, form_key, values)
    store.save(state)
    return form


@app.post("/wizard/{session_id}/photos", status_code=201)
def upload_wizard_photo(session_id: str, file: UploadFile = File(...)):
    """Attach a photo to the memorial info form; it is uploaded to storage on submit"""
    store = get_session_store()
    state = store.get(session_id)
    content = file.file.read()
    photo = orchestrator.add_photo(
        state,
        filename=file.filename or "photo",
        content=content,
        content_type=file.content_type
    )
    store.save(state)
    return {"id": photo.id, "filename": photo.file.filename, "preview": photo.preview}


@app.delete("/wizard/{session_id}/photos/{photo_id}")
def remove_wizard_photo(session_id: str, photo_id: str):
    store = get_session_store()
    state = store.get(session_id)
    orchestrator.remove_photo(state, photo_id)
    store.save(state)
    return {"success": True, "photoId": photo_id}


@app.post("/wizard/{session_id}/kit/items", status_code=201)
def add_kit_item(session_id: str, request: AddKitItemRequest):
    """Add a product with its selected options to the memorial kit"""
    store = get_session_store()
    state = store.get(session_id)
    item = orchestrator.add_kit_item(
        state,
        product_id=request.product_id,
        size_id=request.size_id,
        finish_id=request.finish_id,
        custom_text=request.custom_text,
        preset_text_id=request.preset_text_id
    )
    store.save(state)
    return item.model_dump(mode="json", by_alias=True)


@app.patch("/wizard/{session_id}/kit/items/{item_id}")
def update_kit_item(session_id: str, item_id: str, request: UpdateKitItemRequest):
    store = get_session_store()
    state = store.get(session_id)
    item = orchestrator.update_kit_item(state, item_id, request.quantity)
    store.save(state)
    return item.model_dump(mode="json", by_alias=True)


@app.delete("/wizard/{session_id}/kit/items/{item_id}")
def remove_kit_item(session_id: str, item_id: str):
    store = get_session_store()
    state = store.get(session_id)
    orchestrator.remove_kit_item(state, item_id)
    store.save(state)
    return {"success": True, "itemId": item_id}


@app.post("/wizard/{session_id}/advance")
def advance_wizard(session_id: str):
    """Validate the current step and move to the next one"""
    store = get_session_store()
    state = store.get(session_id)
    step = state.current_step
    result = orchestrator.advance(state)
    if not result.ok:
        return JSONResponse(
            status_code=422,
            content={"step": step.value, "errors": result.errors}
        )
    store.save(state)
    return _state_view(state)


@app.post("/wizard/{session_id}/retreat")
def retreat_wizard(session_id: str):
    store = get_session_store()
    state = store.get(session_id)
    orchestrator.retreat(state)
    store.save(state)
    return _state_view(state)


@app.get("/wizard/{session_id}/review")
def review_wizard(session_id: str):
    """Summary of the selections with the display total"""
    state = get_session_store().get(session_id)
    return orchestrator.review_summary(state)


@app.post("/wizard/{session_id}/submit", response_model=SubmitResponse)
def submit_wizard(session_id: str):
    """
    Validate every step, create the order, and open a checkout session.
    The client navigates to the returned redirect URL.
    """
    store = get_session_store()
    state = store.get(session_id)
    result, submission = CheckoutService().submit_wizard(state, orchestrator, store)
    if submission is None:
        return JSONResponse(status_code=422, content={"errors": result.errors})
    return SubmitResponse(order_id=submission.order.id, redirect_url=submission.redirect_url)


# Order endpoints
@app.post("/orders", response_model=CreateOrderResponse)
def create_order(request: CreateOrderRequest):
    """Create an order and its items from submitted form data"""
    return OrderService().create_order(
        request.form_data,
        email=request.email,
        profile_id=request.profile_id
    )


@app.get("/orders/{order_id}", response_model=CreateOrderResponse)
def get_order(order_id: str):
    persistence = get_persistence_client()
    order = persistence.get_order(order_id)
    return CreateOrderResponse(order=order, order_items=persistence.get_order_items(order_id))


@app.post("/orders/{order_id}/reviews", status_code=201, response_model=Review)
def create_review(order_id: str, request: CreateReviewRequest):
    persistence = get_persistence_client()
    persistence.get_order(order_id)
    return persistence.create_review(
        order_id,
        rating=request.rating,
        comment=request.comment,
        author_name=request.author_name
    )


@app.post("/profiles", status_code=201, response_model=Profile)
def create_profile(request: CreateProfileRequest):
    return get_persistence_client().create_profile(request.email, request.full_name)


# Checkout endpoints
@app.post("/checkout/sessions", response_model=CheckoutSessionResponse)
def create_checkout_session(request: CheckoutSessionRequest):
    """Create a hosted payment session for an existing order"""
    session = CheckoutService().create_checkout_session(
        order_id=request.order_id,
        email=request.email,
        order_total=request.order_total,
        success_url=request.success_url,
        cancel_url=request.cancel_url
    )
    return CheckoutSessionResponse(session_id=session.session_id, url=session.url)


@app.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature")
):
    """Payment provider webhook; marks orders PAID on completed checkout"""
    payload = await request.body()
    try:
        handler = WebhookHandler()
        return await run_in_threadpool(handler.handle, payload, stripe_signature)
    except WebhookError as e:
        return JSONResponse(status_code=e.status_code, content={"error": str(e)})
    except NotFoundError as e:
        logger.error(f"Webhook references unknown order: {e}")
        return JSONResponse(status_code=404, content={"error": str(e)})
    except (PersistenceError, ServiceUnavailableError) as e:
        logger.error(f"Error updating order status: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Error updating order"})


# Error handlers
@app.exception_handler(ValidationError)
async def validation_error_handler(request, exc):
    return JSONResponse(
        status_code=400,
        content={"error": "Validation error", "message": str(exc)}
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request, exc):
    return JSONResponse(
        status_code=404,
        content={"error": "Not found", "message": str(exc)}
    )


@app.exception_handler(SessionNotFoundError)
async def session_not_found_handler(request, exc):
    return JSONResponse(
        status_code=404,
        content={"error": "Session not found", "message": str(exc)}
    )


@app.exception_handler(SubmissionInProgressError)
async def submission_in_progress_handler(request, exc):
    return JSONResponse(
        status_code=409,
        content={"error": "Submission in progress", "message": str(exc)}
    )


@app.exception_handler(OrderAlreadySubmittedError)
async def order_already_submitted_handler(request, exc):
    return JSONResponse(
        status_code=409,
        content={"error": "Order already submitted", "message": str(exc), "orderId": exc.order_id}
    )


@app.exception_handler(SubmissionError)
async def submission_error_handler(request, exc):
    return JSONResponse(
        status_code=502,
        content={"error": SubmissionError.USER_MESSAGE}
    )


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request, exc):
    return JSONResponse(status_code=400, content={"error": exc.message})


@app.exception_handler(CatalogLookupError)
async def catalog_lookup_handler(request, exc):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(PaymentError)
async def payment_error_handler(request, exc):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(PaymentConfigurationError)
async def payment_configuration_handler(request, exc):
    logger.error(f"Payment provider misconfigured: {exc}")
    return JSONResponse(
        status_code=503,
        content={"error": "Service unavailable", "message": str(exc)}
    )


@app.exception_handler(ServiceUnavailableError)
async def service_unavailable_handler(request, exc):
    return JSONResponse(
        status_code=503,
        content={"error": "Service unavailable", "message": str(exc)}
    )


@app.exception_handler(RedisConnectionError)
async def redis_error_handler(request, exc):
    return JSONResponse(
        status_code=503,
        content={"error": "Service unavailable", "message": "Redis connection failed"}
    )


# Generic exception handler for unhandled errors
@app.exception_handler(Exception)
async def generic_exception_handler(request, exc):
    logger.error(
        f"Unhandled exception: {type(exc).__name__}: {exc}",
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "type": type(exc).__name__
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=Config.APP_PORT)
