"""
OpenAI image client for Wrapped posters.

Uses the OpenAI SDK `images.generate` endpoint and returns the image as a
data URL so the frontend can render it without a second fetch.

Without OPENAI_API_KEY (local/mock mode), or when generation fails, a
placeholder image URL seeded from the prompt is returned instead. A poster
is decoration; it never fails a report.
"""

import hashlib
import logging

from openai import OpenAI

from config import settings

logger = logging.getLogger(__name__)

PLACEHOLDER_URL = "https://picsum.photos/seed/{seed}/1024/1024"

_client = None


def _get_client() -> OpenAI | None:
    """Return cached OpenAI client, creating on first call. None when no API key."""
    global _client
    if _client is None and settings.openai_api_key:
        _client = OpenAI(api_key=settings.openai_api_key)
    return _client


def placeholder_image(prompt: str) -> str:
    seed = hashlib.sha1(prompt.encode("utf-8")).hexdigest()[:12]
    return PLACEHOLDER_URL.format(seed=seed)


def generate_image(prompt: str, reference_image_urls: list[str] | None = None) -> str:
    """
    Generate a 1024x1024 poster for `prompt`, return a data URL or image URL.
    """
    client = _get_client()
    if client is None:
        return placeholder_image(prompt)

    if reference_image_urls:
        prompt += (
            "\n\nThis slide should feel personal. Echo the mood and palette of the "
            f"creator's own posts ({len(reference_image_urls)} reference images) "
            "with warm tones and a candid feel."
        )

    try:
        response = client.images.generate(
            model=settings.openai_image_model,
            prompt=prompt,
            size="1024x1024",
            response_format="b64_json",
        )
    except Exception as e:
        logger.warning("Image generation failed, using placeholder: %s", e)
        return placeholder_image(prompt)

    image = response.data[0] if response.data else None
    if image is not None and image.b64_json:
        return f"data:image/png;base64,{image.b64_json}"
    if image is not None and image.url:
        return image.url
    logger.warning("Image generation returned no image, using placeholder")
    return placeholder_image(prompt)
