"""Yearly Wrapped recap built from the synced media and daily insights.

Two ways to produce a report: generate_report() renders one poster for the
whole recap, stream_report() renders one poster per slide and yields
progress events as it goes so the client can show slides as they land.
"""

import asyncio
import logging
from typing import AsyncIterator, Callable

from errors import NotFoundError, NotLinkedError
from models import IgAccount, IgInsightDaily, IgMedia
from services.openai_client import generate_image
from services.store import Store

logger = logging.getLogger(__name__)

MIN_YEAR = 2020
MAX_YEAR = 2100

DEFAULT_STYLE = "neon gradients, confetti, social media analytics vibe"
MAX_REFERENCE_IMAGES = 4


def build_slides(username: str, year: int, media: list[IgMedia], insights: list[IgInsightDaily]) -> dict:
    """Compute the recap numbers and slide copy for one year.

    Media without a timestamp can't be placed in a year and is left out.
    """
    media = [m for m in media if m.timestamp is not None and m.timestamp.year == year]
    insights = [i for i in insights if i.date.year == year]

    total_likes = sum(m.like_count for m in media)
    total_comments = sum(m.comments_count for m in media)
    top_post = max(media, key=lambda m: m.like_count, default=None)
    avg_reach = round(sum(i.reach for i in insights) / len(insights)) if insights else 0

    slides = [
        {"title": f"{year} Wrapped", "text": f"@{username}, you posted {len(media)} pieces of content."},
        {"title": "Engagement", "text": f"You got {total_likes} likes and {total_comments} comments in total."},
        {"title": "Reach", "text": f"Average daily reach: {avg_reach}. Keep creating!"},
        {
            "title": "Top Post",
            "text": f"{top_post.caption or 'Untitled'} ({top_post.like_count} likes)" if top_post else "No posts found.",
        },
    ]
    return {
        "slides": slides,
        "summary": f"Total likes {total_likes}, comments {total_comments}, avg reach {avg_reach}",
        "stats": {
            "posts": len(media),
            "total_likes": total_likes,
            "total_comments": total_comments,
            "avg_reach": avg_reach,
            "days_with_insights": len(insights),
            "top_post": {
                "media_id": top_post.media_id,
                "caption": top_post.caption,
                "like_count": top_post.like_count,
                "permalink": top_post.permalink,
            } if top_post else None,
        },
        "reference_images": [m.media_url for m in media if m.media_url][:MAX_REFERENCE_IMAGES],
    }


def slide_prompt(username: str, year: int, slide: dict, style_prompt: str | None = None) -> str:
    return (
        f"Instagram wrapped poster slide for @{username} in {year}. "
        f"Headline: {slide['title']}. Message: {slide['text']}. "
        f"Style: {style_prompt or DEFAULT_STYLE}"
    )


async def load_recap(store: Store, owner_id: str, year: int) -> tuple[IgAccount, dict]:
    """The owner's account and that year's recap. Raises NotLinkedError first."""
    account = await asyncio.to_thread(store.get_account_for_user, owner_id)
    if account is None:
        raise NotLinkedError()
    media = await asyncio.to_thread(store.list_media, account.id)
    insights = await asyncio.to_thread(store.list_daily_insights, account.id)
    return account, build_slides(account.username, year, media, insights)


async def _save(store: Store, account: IgAccount, year: int, recap: dict, slides: list[dict], image_ref: str | None) -> dict:
    report = await asyncio.to_thread(
        store.upsert_report,
        account.user_id,
        year,
        f"{account.username}'s {year} Wrapped",
        recap["summary"],
        slides,
        image_ref,
    )
    logger.info("Generated %d Wrapped for user %s", year, account.user_id)
    return report.to_dict()


async def recap_data(store: Store, owner_id: str, year: int) -> dict:
    """Recap numbers and slide copy without rendering or saving anything."""
    account, recap = await load_recap(store, owner_id, year)
    return {"year": year, "username": account.username, **recap}


async def generate_report(
    store: Store,
    owner_id: str,
    year: int,
    image_fn: Callable[..., str] = generate_image,
) -> dict:
    account, recap = await load_recap(store, owner_id, year)

    prompt = (
        f"Instagram wrapped poster for @{account.username} in {year}, neon gradients, "
        "confetti, social media analytics vibe"
    )
    image_ref = await asyncio.to_thread(image_fn, prompt, recap["reference_images"])
    return await _save(store, account, year, recap, recap["slides"], image_ref)


async def stream_report(
    store: Store,
    account: IgAccount,
    year: int,
    recap: dict,
    style_prompt: str | None = None,
    reference_images: list[str] | None = None,
    image_fn: Callable[..., str] | None = None,
) -> AsyncIterator[tuple[str, dict]]:
    """Yield (event, data) pairs: status updates, one slide per poster, then complete.

    The report is only saved once every slide has its poster.
    """
    image_fn = image_fn or generate_image
    references = (reference_images or recap["reference_images"])[:MAX_REFERENCE_IMAGES]
    slides = recap["slides"]
    total = len(slides)

    yield "status", {"message": f"Crunching your {year} numbers", "phase": "analyzing"}

    rendered = []
    for index, slide in enumerate(slides):
        yield "status", {
            "message": f"Designing slide {index + 1} of {total}",
            "phase": "generating",
            "current": index + 1,
            "total": total,
        }
        prompt = slide_prompt(account.username, year, slide, style_prompt)
        image_url = await asyncio.to_thread(image_fn, prompt, references)
        slide = {**slide, "image_url": image_url}
        rendered.append(slide)
        yield "slide", {"index": index, "slide": slide, "total": total}

    yield "status", {"message": "Saving your Wrapped", "phase": "saving"}
    report = await _save(store, account, year, recap, rendered, rendered[0]["image_url"] if rendered else None)
    yield "complete", {"report": report}


async def get_report(store: Store, owner_id: str, year: int) -> dict:
    account = await asyncio.to_thread(store.get_account_for_user, owner_id)
    if account is None:
        raise NotLinkedError()
    report = await asyncio.to_thread(store.get_report, account.user_id, year)
    if report is None:
        raise NotFoundError("Wrapped report not found for year")
    return report.to_dict()
