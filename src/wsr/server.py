import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from wsr.application.review_service import ReviewService
from wsr.consts import VERSION
from wsr.domain.errors import ItemNotFound
from wsr.domain.models import Rating

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("wsr.server")

_service: ReviewService | None = None


def get_service() -> ReviewService:
    """Process-wide ReviewService, so every request shares one sync lock."""
    global _service
    if _service is None:
        from wsr.application.config import resolve_config
        from wsr.application.factory import get_review_service

        _service = get_review_service(resolve_config())
    return _service


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"wsr server v{VERSION} starting up...")
    yield
    # Shutdown
    logger.info("wsr server shutting down...")


app = FastAPI(
    title="wsr Server",
    description="Review queue and grading API for a Markdown vault.",
    version=VERSION,
    lifespan=lifespan,
)


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


start_time = time.time()


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


class SyncResponse(BaseModel):
    synced: bool  # False when another sync was already running
    items: int
    due: int
    postponed: int


@app.post("/sync", response_model=SyncResponse)
async def trigger_sync():
    """
    Rescan the vault and rebuild the review queue.
    """
    service = get_service()
    try:
        synced = await service.sync()
    except Exception as e:
        logger.error(f"Sync failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e
    return SyncResponse(
        synced=synced,
        items=len(service.items),
        due=len(service.queue),
        postponed=len(service.postponed),
    )


class QueueEntryResponse(BaseModel):
    id: str
    title: str
    priority: float
    due: str


@app.get("/queue", response_model=list[QueueEntryResponse])
async def get_queue(limit: int | None = None):
    service = get_service()
    if service.last_sync is None:
        await service.sync()
    entries = service.queue[:limit] if limit else service.queue
    return [
        QueueEntryResponse(
            id=e.item.id,
            title=e.item.title,
            priority=e.priority,
            due=e.item.state.due.isoformat(),
        )
        for e in entries
    ]


class GradeRequest(BaseModel):
    rating: str | int


class GradeResponse(BaseModel):
    id: str
    state: str
    due: str
    scheduled_days: int
    reps: int
    lapses: int


@app.post("/items/{item_id:path}/grade", response_model=GradeResponse)
async def grade_item(item_id: str, req: GradeRequest):
    """Record a rating for one item."""
    try:
        rating = Rating.parse(req.rating)
    except (KeyError, ValueError) as e:
        raise HTTPException(status_code=422, detail=f"Invalid rating: {req.rating}") from e

    service = get_service()
    try:
        state = await service.record_review(item_id, rating)
    except ItemNotFound as e:
        raise HTTPException(status_code=404, detail=f"Item not found: {item_id}") from e
    return GradeResponse(
        id=item_id,
        state=state.state.name.lower(),
        due=state.due.isoformat(),
        scheduled_days=state.scheduled_days,
        reps=state.reps,
        lapses=state.lapses,
    )


class PostponeRequest(BaseModel):
    undo: bool = False


@app.post("/items/{item_id:path}/postpone")
async def postpone_item(item_id: str, req: PostponeRequest | None = None):
    service = get_service()
    if req is not None and req.undo:
        await service.unpostpone(item_id)
        return {"ok": True, "postponed": False}
    try:
        await service.postpone(item_id)
    except ItemNotFound as e:
        raise HTTPException(status_code=404, detail=f"Item not found: {item_id}") from e
    return {"ok": True, "postponed": True}
