"""Download the accepted image and normalize it to the LinkedIn header size."""

import logging
from io import BytesIO
from pathlib import Path

import httpx
from PIL import Image, ImageOps, UnidentifiedImageError

from imagefinder.providers.base import ProviderError

logger = logging.getLogger(__name__)

JPEG_QUALITY = 85


async def persist_candidate(
    url: str,
    dest: Path,
    width: int = 1200,
    height: int = 628,
    timeout_sec: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Path:
    """Fetch ``url``, cover-crop to width x height around the centre, save as JPEG.

    Raises:
        ProviderError: On download failure, timeout, or undecodable image data.
    """
    try:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_sec), follow_redirects=True, transport=transport
        ) as client:
            response = await client.get(url)
            response.raise_for_status()
    except httpx.TimeoutException as exc:
        raise ProviderError("download", f"Timed out after {timeout_sec}s fetching {url}") from exc
    except httpx.HTTPError as exc:
        raise ProviderError("download", f"Failed to fetch {url}: {exc}") from exc

    try:
        with Image.open(BytesIO(response.content)) as image:
            fitted = ImageOps.fit(
                image.convert("RGB"),
                (width, height),
                method=Image.Resampling.LANCZOS,
                centering=(0.5, 0.5),
            )
    except (UnidentifiedImageError, OSError) as exc:
        raise ProviderError("download", f"Not a decodable image: {url}") from exc

    dest.parent.mkdir(parents=True, exist_ok=True)
    fitted.save(dest, format="JPEG", quality=JPEG_QUALITY)
    logger.info("Saved %dx%d image to %s", width, height, dest)
    return dest
