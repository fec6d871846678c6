"""Stock photo search: Pexels and Unsplash REST APIs via httpx."""

import httpx

from config.config_loader import SourceConfig
from imagefinder.providers.base import ImageHit, ImageSearch
from imagefinder.providers.http_utils import get_json, require_api_key

PEXELS_URL = "https://api.pexels.com/v1/search"
UNSPLASH_URL = "https://api.unsplash.com/search/photos"


class PexelsSearch(ImageSearch):
    def __init__(self, config: SourceConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._config = config
        self._api_key = require_api_key(config)
        self._transport = transport

    def name(self) -> str:
        return self._config.name

    async def query(self, query: str) -> list[ImageHit]:
        data = await get_json(
            self._config.name,
            PEXELS_URL,
            timeout_sec=self._config.timeout_sec,
            transport=self._transport,
            headers={"Authorization": self._api_key},
            params={"query": query, "per_page": self._config.per_page, "orientation": "landscape"},
        )
        hits: list[ImageHit] = []
        for photo in data.get("photos") or []:
            url = (photo.get("src") or {}).get("large2x")
            if url:
                hits.append(ImageHit(url=url, credit=photo.get("photographer") or "Pexels"))
        return hits


class UnsplashSearch(ImageSearch):
    def __init__(self, config: SourceConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._config = config
        self._api_key = require_api_key(config)
        self._transport = transport

    def name(self) -> str:
        return self._config.name

    async def query(self, query: str) -> list[ImageHit]:
        data = await get_json(
            self._config.name,
            UNSPLASH_URL,
            timeout_sec=self._config.timeout_sec,
            transport=self._transport,
            headers={"Authorization": f"Client-ID {self._api_key}"},
            params={"query": query, "per_page": self._config.per_page, "orientation": "landscape"},
        )
        hits: list[ImageHit] = []
        for photo in data.get("results") or []:
            url = (photo.get("urls") or {}).get("regular")
            if url:
                hits.append(ImageHit(url=url, credit=(photo.get("user") or {}).get("name") or "Unsplash"))
        return hits
