"""Wrapped recap routes.

POST /api/wrapped/generate          build and save the recap with one poster
POST /api/wrapped/generate/stream   same, one poster per slide, as Server-Sent Events
GET  /api/wrapped/data/{year}       recap numbers only, nothing rendered or saved
GET  /api/wrapped/{year}            saved report
"""

import json
import logging

from fastapi import APIRouter, Depends, Path
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from deps import get_store, require_user_id
from services import wrapped
from services.store import Store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/wrapped")


class GenerateRequest(BaseModel):
    year: int = Field(ge=wrapped.MIN_YEAR, le=wrapped.MAX_YEAR)


class StreamRequest(GenerateRequest):
    style_prompt: str | None = Field(None, alias="stylePrompt", max_length=500)
    reference_images: list[str] = Field(
        default_factory=list, alias="referenceImages", max_length=wrapped.MAX_REFERENCE_IMAGES
    )


def sse(event: str, data: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


@router.post("/generate")
async def generate(
    body: GenerateRequest,
    user_id: str = Depends(require_user_id),
    store: Store = Depends(get_store),
) -> dict:
    """Build (or rebuild) the caller's recap for a year from the synced data."""
    report = await wrapped.generate_report(store, user_id, body.year)
    return {"report": report}


@router.post("/generate/stream")
async def generate_stream(
    body: StreamRequest,
    user_id: str = Depends(require_user_id),
    store: Store = Depends(get_store),
) -> StreamingResponse:
    """
    Stream recap generation as Server-Sent Events.
    Events: `status` progress, one `slide` per rendered poster, then `complete`
    with the saved report, or `error` if generation fails part way.
    """
    # Not-linked must surface as a plain 404 before the stream opens
    account, recap = await wrapped.load_recap(store, user_id, body.year)

    async def event_stream():
        try:
            async for event, data in wrapped.stream_report(
                store,
                account,
                body.year,
                recap,
                style_prompt=body.style_prompt,
                reference_images=body.reference_images,
            ):
                yield sse(event, data)
        except Exception as e:
            logger.exception("Wrapped stream failed for user %s: %s", user_id, e)
            yield sse("error", {"message": "Wrapped generation failed. Please try again."})

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/data/{year}")
async def wrapped_data(
    year: int = Path(ge=wrapped.MIN_YEAR, le=wrapped.MAX_YEAR),
    user_id: str = Depends(require_user_id),
    store: Store = Depends(get_store),
) -> dict:
    return await wrapped.recap_data(store, user_id, year)


@router.get("/{year}")
async def get_wrapped(
    year: int = Path(ge=wrapped.MIN_YEAR, le=wrapped.MAX_YEAR),
    user_id: str = Depends(require_user_id),
    store: Store = Depends(get_store),
) -> dict:
    return {"report": await wrapped.get_report(store, user_id, year)}
