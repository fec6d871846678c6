"""Google Images search through SerpAPI via httpx."""

import httpx

from config.config_loader import SourceConfig
from imagefinder.providers.base import ImageHit, ImageSearch
from imagefinder.providers.http_utils import get_json, require_api_key

SERPAPI_URL = "https://serpapi.com/search"


class SerpApiImageSearch(ImageSearch):
    """Web image search. SerpAPI bills per call, whatever the result count."""

    def __init__(self, config: SourceConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._config = config
        self._api_key = require_api_key(config)
        self._transport = transport

    def name(self) -> str:
        return self._config.name

    async def query(self, query: str) -> list[ImageHit]:
        data = await get_json(
            self._config.name,
            SERPAPI_URL,
            timeout_sec=self._config.timeout_sec,
            transport=self._transport,
            params={
                "engine": "google_images",
                "q": query,
                "api_key": self._api_key,
                "num": self._config.per_page,
                "safe": "active",
            },
        )
        hits: list[ImageHit] = []
        for img in (data.get("images_results") or [])[: self._config.per_page]:
            url = img.get("original")
            if url:
                hits.append(ImageHit(url=url, credit=img.get("source") or "Google Images"))
        return hits
