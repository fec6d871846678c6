"""Shared helpers for the REST image-search providers."""

import os

import httpx

from config.config_loader import SourceConfig
from imagefinder.providers.base import ProviderError


def require_api_key(config: SourceConfig) -> str:
    api_key = os.environ.get(config.api_key_env, "").strip()
    if not api_key:
        raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
    return api_key


async def get_json(
    provider_name: str,
    url: str,
    *,
    timeout_sec: float,
    headers: dict[str, str] | None = None,
    params: dict | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict:
    """GET a JSON document with a bounded timeout.

    Raises:
        ProviderError: On timeout, transport failure, non-200 status or non-JSON body.
    """
    try:
        async with httpx.AsyncClient(timeout=httpx.Timeout(timeout_sec), transport=transport) as client:
            response = await client.get(url, headers=headers, params=params)
    except httpx.TimeoutException as exc:
        raise ProviderError(provider_name, f"Request timed out after {timeout_sec}s") from exc
    except httpx.HTTPError as exc:
        raise ProviderError(provider_name, f"Request failed: {exc}") from exc

    if response.status_code != 200:
        raise ProviderError(provider_name, f"HTTP {response.status_code}: {response.text[:200]}")

    try:
        data = response.json()
    except ValueError as exc:
        raise ProviderError(provider_name, "Response body is not JSON") from exc
    if not isinstance(data, dict):
        raise ProviderError(provider_name, "Unexpected response shape")
    return data
