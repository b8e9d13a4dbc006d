import logging
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import FastAPI, Response, Request, Depends, Header, HTTPException, status, Query

from review_queue.config import settings
from review_queue.event_locker import EventLocker
from review_queue.logging_utils import setup_logging, RequestLoggingMiddleware, log_queue_data
from review_queue.metrics import record_queue_outcome, get_metrics, get_metrics_content_type
from review_queue.queue_manager import EnqueueResult, QueueManager
from review_queue.schemas import (
    ClaimRequest,
    EnqueueRequest,
    EnqueueResponse,
    ErrorResponse,
    EventResponse,
    HealthResponse,
    InboundEvent,
    QueueEntry,
    QueueListResponse,
    RemoveRequest,
    RemoveResponse,
    ScoreResponse,
)
from review_queue.storage import build_engine, build_session_factory, check_db_health, init_db
from review_queue.utils import verify_hmac_signature


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: build the engine, create missing tables, wire the queue and locker
    - Shutdown: release pooled connections
    """
    engine = build_engine(
        settings.DATABASE_URL,
        echo=settings.DB_ECHO,
        sqlite_busy_timeout=settings.SQLITE_BUSY_TIMEOUT,
    )
    init_db(engine)
    sessions = build_session_factory(engine)

    app.state.engine = engine
    app.state.queue = QueueManager(sessions)
    app.state.locker = EventLocker(sessions)
    yield
    engine.dispose()


app = FastAPI(
    title="Review Queue API",
    description="Channel-scoped pull request review queue with at-most-once event admission",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)


# =============================================================================
# Dependencies
# =============================================================================

def get_queue(request: Request) -> QueueManager:
    return request.app.state.queue


def get_locker(request: Request) -> EventLocker:
    return request.app.state.locker


async def require_signature(
    request: Request,
    x_signature: Annotated[str | None, Header(alias="X-Signature")] = None,
) -> None:
    """Reject the request unless X-Signature is the HMAC of the raw body."""
    raw_body = await request.body()

    if not x_signature:
        logger.error(f"Missing X-Signature header on {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid signature"
        )

    if not verify_hmac_signature(raw_body, x_signature, settings.WEBHOOK_SECRET):
        logger.error(f"Invalid HMAC signature on {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid signature"
        )


SIGNED = [Depends(require_signature)]
UNAUTHORIZED = {401: {"model": ErrorResponse, "description": "Invalid signature"}}


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """
    Liveness probe - always returns 200 once the app is running.
    """
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
def health_ready(request: Request, response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if:
    1. WEBHOOK_SECRET is set (non-empty)
    2. DB is reachable and both prs and msg tables exist

    Otherwise returns 503 (Service Unavailable).
    """
    if not settings.WEBHOOK_SECRET:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="WEBHOOK_SECRET not configured"
        )

    if not check_db_health(request.app.state.engine):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    return HealthResponse(status="ready")


# =============================================================================
# Event Admission Route
# =============================================================================

@app.post(
    "/events",
    response_model=EventResponse,
    dependencies=SIGNED,
    responses=UNAUTHORIZED,
)
def admit_event(
    event: InboundEvent,
    request: Request,
    locker: EventLocker = Depends(get_locker),
) -> EventResponse:
    """
    Claim an inbound event for processing.

    `admitted` is true for exactly one caller per (user, ts); everyone else,
    including callers that hit a store error, must drop the event.
    """
    admitted = locker.admit(event)
    result = "admitted" if admitted else "rejected"

    record_queue_outcome("admit", result)
    log_queue_data(request, operation="admit", result=result, channel=event.channel)

    return EventResponse(admitted=admitted)


# =============================================================================
# Queue Routes
# =============================================================================

@app.post(
    "/queue",
    response_model=EnqueueResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=SIGNED,
    responses={
        **UNAUTHORIZED,
        409: {"model": EnqueueResponse, "description": "Already in queue"},
        500: {"model": EnqueueResponse, "description": "Store failure"},
    },
)
def enqueue(
    body: EnqueueRequest,
    request: Request,
    response: Response,
    queue: QueueManager = Depends(get_queue),
) -> EnqueueResponse:
    """
    Submit an item to a channel's queue.

    - 201: queued
    - 409: the item was already submitted to this channel
    - 500: the store failed; nothing is known about duplication
    """
    result = queue.enqueue(body.pr, body.reporter, body.channel)

    if result is EnqueueResult.DUPLICATE:
        response.status_code = status.HTTP_409_CONFLICT
    elif result is EnqueueResult.FAILED:
        response.status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    record_queue_outcome("enqueue", result.value)
    log_queue_data(request, operation="enqueue", result=result.value, pr=body.pr, channel=body.channel)

    return EnqueueResponse(result=result.value)


@app.post(
    "/queue/claim",
    response_model=QueueEntry,
    dependencies=SIGNED,
    responses={
        **UNAUTHORIZED,
        404: {"model": ErrorResponse, "description": "Nothing available to claim"},
    },
)
def claim(
    body: ClaimRequest,
    request: Request,
    queue: QueueManager = Depends(get_queue),
) -> QueueEntry:
    """
    Take the oldest queued item `user` did not submit.

    Store failures are reported like an empty queue: try again later.
    """
    entry = queue.claim(body.user, channel=body.channel, search=body.search)

    if entry is None:
        record_queue_outcome("claim", "none")
        log_queue_data(request, operation="claim", result="none", channel=body.channel)
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="no item available"
        )

    record_queue_outcome("claim", "claimed")
    log_queue_data(request, operation="claim", result="claimed", pr=entry.pr, channel=entry.channel)
    return entry


@app.get(
    "/queue",
    response_model=QueueListResponse,
    responses={503: {"model": ErrorResponse, "description": "Store unavailable"}},
)
def list_queue(
    request: Request,
    channel: Annotated[str | None, Query(description="Only items queued in this channel")] = None,
    queue: QueueManager = Depends(get_queue),
) -> QueueListResponse:
    """
    Unclaimed items, oldest first.
    """
    items = queue.list(channel)

    if items is None:
        record_queue_outcome("list", "failed")
        log_queue_data(request, operation="list", result="failed", channel=channel)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="queue unavailable"
        )

    record_queue_outcome("list", "ok")
    log_queue_data(request, operation="list", result="ok", channel=channel)
    return QueueListResponse(data=items, total=len(items))


@app.post(
    "/queue/remove",
    response_model=RemoveResponse,
    dependencies=SIGNED,
    responses=UNAUTHORIZED,
)
def remove(
    body: RemoveRequest,
    request: Request,
    queue: QueueManager = Depends(get_queue),
) -> RemoveResponse:
    """
    Drop an item from every channel, claimed or not.

    Used when the item is no longer open upstream. Best effort.
    """
    removed = queue.remove(body.pr)

    record_queue_outcome("remove", "removed")
    log_queue_data(request, operation="remove", result="removed", pr=body.pr)
    return RemoveResponse(removed=removed)


@app.get("/score/{user}", response_model=ScoreResponse)
def score(
    user: str,
    request: Request,
    queue: QueueManager = Depends(get_queue),
) -> ScoreResponse:
    """Share of the user's queue activity spent reviewing others' items."""
    value = queue.score(user)
    log_queue_data(request, operation="score", result="ok")
    return ScoreResponse(user=user, score=value)


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """
    Expose Prometheus-style metrics.
    """
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
