import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response, Request, Depends, status
from fastapi.responses import JSONResponse

from sosrelay.config import settings
from sosrelay.errors import InternalError, ValidationError, register_error_handlers
from sosrelay.forwarder import CommandClient
from sosrelay.logging_utils import setup_logging, RequestLoggingMiddleware, annotate_request
from sosrelay.metrics import get_metrics, get_metrics_content_type
from sosrelay.relay import RelayService
from sosrelay.relay_store import InMemoryRelayStore
from sosrelay.retry_queue import RetryQueueProcessor
from sosrelay.schemas import (
    AckResponse,
    ErrorResponse,
    HealthResponse,
    MessagesListResponse,
    QueuedResponse,
    QueueResponse,
    RelayMessageResponse,
    RetryQueueItemResponse,
    SmsReceiverRequest,
)


setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


def build_relay_service() -> RelayService:
    """Wire the relay from settings: in-memory store, HTTP forwarder, retry processor."""
    store = InMemoryRelayStore()
    forwarder = CommandClient(settings.COMMAND_URL, timeout=settings.FORWARD_TIMEOUT_SECONDS)
    processor = RetryQueueProcessor(
        store,
        forwarder,
        base_delay_ms=settings.RETRY_BASE_DELAY_MS,
        max_delay_ms=settings.RETRY_MAX_DELAY_MS,
        max_attempts=settings.RETRY_MAX_ATTEMPTS,
    )
    return RelayService(store, forwarder, processor)


relay_service = build_relay_service()


def get_relay_service() -> RelayService:
    return relay_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Relay started, forwarding to {settings.COMMAND_URL}")
    yield
    await get_relay_service().processor.stop()
    logger.info("Relay stopped")


app = FastAPI(
    title="SOS Relay",
    description="Store-and-forward gateway between edge clients and the command service",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware, service="relay")
register_error_handlers(app)


# =============================================================================
# Health Check Route
# =============================================================================

@app.get("/health", response_model=HealthResponse, response_model_exclude_none=True)
async def health() -> HealthResponse:
    return HealthResponse(status="ok")


# =============================================================================
# SMS Receiver Route
# =============================================================================

@app.post(
    "/sms-receiver",
    response_model=AckResponse,
    responses={
        202: {"model": QueuedResponse, "description": "Command service unreachable, alert queued for retry"},
        400: {"model": ErrorResponse, "description": "Missing payload"},
        500: {"model": ErrorResponse, "description": "Unexpected relay failure"},
    }
)
async def sms_receiver(
    request: Request,
    body: SmsReceiverRequest,
    service: RelayService = Depends(get_relay_service),
):
    """
    Accept an alert from an edge client.

    - 200 {ack}: forwarded on the first attempt
    - 202 {queued: true}: command service unreachable; retried in the background
    """
    try:
        result = await service.submit(body.payload)
    except ValidationError:
        annotate_request(request, result="validation_error")
        raise
    except Exception as e:
        logger.exception(f"sms-receiver failed: {e}")
        annotate_request(request, result="error")
        raise InternalError("internal") from e

    if result.queued:
        annotate_request(request, result="queued", message_id=result.record.id)
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content=QueuedResponse().model_dump(),
        )

    annotate_request(request, result="forwarded", message_id=result.record.id)
    return AckResponse(ack=result.ack)


# =============================================================================
# Inspection Routes
# =============================================================================

@app.get("/messages", response_model=MessagesListResponse)
async def list_messages(service: RelayService = Depends(get_relay_service)) -> MessagesListResponse:
    """Every message the relay has received, with the current retry queue size."""
    return MessagesListResponse(
        messages=[RelayMessageResponse.model_validate(m) for m in service.store.list_messages()],
        queue_size=service.store.queue_size(),
    )


@app.get("/queue", response_model=QueueResponse)
async def list_queue(service: RelayService = Depends(get_relay_service)) -> QueueResponse:
    return QueueResponse(
        items=[RetryQueueItemResponse.model_validate(i) for i in service.store.queue_items()],
        processing=service.processor.processing,
    )


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
