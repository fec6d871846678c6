"""Image source health checks: run one probe search per source before starting."""

import asyncio
import logging

from imagefinder.providers.base import ImageSearch

logger = logging.getLogger(__name__)

_PROBE_QUERY = "office"
_TIMEOUT_SEC = 15.0


async def _check_one(name: str, search: ImageSearch) -> tuple[str, bool, str]:
    """Probe a single source. Returns (name, ok, error_message)."""
    try:
        hits = await asyncio.wait_for(search.query(_PROBE_QUERY), timeout=_TIMEOUT_SEC)
    except Exception as exc:
        return name, False, str(exc) or type(exc).__name__
    if not hits:
        return name, False, "probe search returned no results"
    return name, True, ""


async def run_source_checks(
    searches: dict[str, ImageSearch],
) -> dict[str, tuple[bool, str]]:
    """Probe all sources in parallel.

    Returns:
        Dict mapping source name -> (ok, error_message).
        error_message is "" when ok is True.
    """
    results = await asyncio.gather(*(_check_one(n, s) for n, s in searches.items()))
    return {name: (ok, err) for name, ok, err in results}
