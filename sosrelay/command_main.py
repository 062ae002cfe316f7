import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response, Request, Depends, WebSocket, WebSocketDisconnect, status
from sqlalchemy.orm import Session

from sosrelay.config import settings
from sosrelay.errors import InternalError, ValidationError, register_error_handlers
from sosrelay.fanout import ConnectionManager
from sosrelay.logging_utils import setup_logging, RequestLoggingMiddleware, annotate_request
from sosrelay.metrics import record_sos_outcome, get_metrics, get_metrics_content_type
from sosrelay.resolver import resolve
from sosrelay.storage import (
    init_db,
    check_db_health,
    get_db,
    append_alert_log,
    create_sos_event,
    list_safe_bases,
    get_recent_events,
)
from sosrelay.schemas import (
    AckResponse,
    ErrorResponse,
    HealthResponse,
    ResolvedAlertEvent,
    SafeBaseResponse,
    SosEventResponse,
    SosRequest,
)
from sosrelay.wire import parse_alert


setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

manager = ConnectionManager()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and seed the resource directory on startup."""
    init_db()
    logger.info("Command service started")
    yield
    logger.info("Command service stopped")


app = FastAPI(
    title="SOS Command Service",
    description="Resolves SOS alerts to the nearest safe base and fans them out to observers",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware, service="command")
register_error_handlers(app)


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health", response_model=HealthResponse, response_model_exclude_none=True)
async def health() -> HealthResponse:
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse, response_model_exclude_none=True)
async def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - 200 only when the database is reachable and all
    tables exist, otherwise 503.
    """
    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )
    return HealthResponse(status="ready")


# =============================================================================
# SOS Ingestion Route
# =============================================================================

@app.post(
    "/sos",
    response_model=AckResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Missing raw payload"},
        500: {"model": ErrorResponse, "description": "Persistence or resolution failed"},
    }
)
async def ingest_sos(
    request: Request,
    body: SosRequest,
    db: Session = Depends(get_db)
) -> AckResponse:
    """
    Ingest a raw alert and return the acknowledgment.

    - The raw payload is written to the alert log before anything else
    - Parsing never fails; missing fields fall back to defaults
    - The parsed alert is stored as an SOS event with status "received"
    - The nearest safe base and its capacity status form the ack
    - The resolved alert is broadcast to every connected observer
    """
    if not body.raw:
        record_sos_outcome("validation_error")
        annotate_request(request, result="validation_error")
        raise ValidationError("missing raw payload")

    try:
        append_alert_log(db, body.raw)

        parsed = parse_alert(body.raw)
        create_sos_event(
            db,
            device_id=parsed.device_id,
            lat=parsed.lat,
            lon=parsed.lon,
            type=parsed.type,
            time=parsed.time,
            commit=False,
        )
        resolution = resolve(parsed.lat, parsed.lon, list_safe_bases(db))
        db.commit()
    except Exception as e:
        db.rollback()
        logger.exception(f"Failed to process SOS payload: {e}")
        record_sos_outcome("error")
        annotate_request(request, result="error")
        raise InternalError("internal") from e

    ack = resolution.ack
    logger.info(f"SOS resolved: device={parsed.device_id}, ack={ack}")

    event = ResolvedAlertEvent(
        device_id=parsed.device_id,
        lat=parsed.lat,
        lon=parsed.lon,
        emergency=parsed.type,
        time=parsed.time,
        ack=ack,
    )
    delivered = await manager.broadcast_json(event.model_dump(by_alias=True))
    logger.debug(f"Resolved alert broadcast to {delivered} observer(s)")

    record_sos_outcome("ok")
    annotate_request(request, result="resolved", device_id=parsed.device_id)
    return AckResponse(ack=ack)


# =============================================================================
# Listing Routes
# =============================================================================

@app.get("/safe_bases", response_model=list[SafeBaseResponse])
async def safe_bases(db: Session = Depends(get_db)) -> list[SafeBaseResponse]:
    return [SafeBaseResponse.model_validate(b) for b in list_safe_bases(db)]


@app.get("/events", response_model=list[SosEventResponse])
async def events(db: Session = Depends(get_db)) -> list[SosEventResponse]:
    """Latest SOS events, most recent first."""
    rows = get_recent_events(db, limit=settings.EVENTS_LIMIT)
    return [SosEventResponse.model_validate(r) for r in rows]


# =============================================================================
# Real-time Channel
# =============================================================================

@app.websocket("/ws")
async def observers_ws(websocket: WebSocket):
    await manager.connect(websocket)
    try:
        # Observers only listen; inbound text frames are ignored
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    except Exception as e:
        # receive_text() raises KeyError on a binary frame
        logger.warning(f"Closing observer after unexpected frame: {e!r}")
        await websocket.close(code=status.WS_1003_UNSUPPORTED_DATA)
    finally:
        manager.disconnect(websocket)


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
