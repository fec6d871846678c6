"""Candidate sources: wrap raw image providers with round policy.

Stock and web sources never raise from ``search``: a provider failure is
logged and the source contributes nothing to the round. The generative source
is the opposite: it either returns one candidate or raises.
"""

import logging
from abc import ABC, abstractmethod

from imagefinder.costs import GENERATIVE_IMAGE, WEB_SEARCH, CostLedger
from imagefinder.models import Candidate, QueryVariant, ScoredCandidate, SourceKind
from imagefinder.providers.base import ImageGenerator, ImageSearch

logger = logging.getLogger(__name__)

GENERATED_SCORE = 9
GENERATED_RATIONALE = "Custom generated to exactly match post topic"
GENERATED_ATTRIBUTION = "AI Generated"


class CandidateSource(ABC):
    """One provider's contribution to a retrieval round."""

    def __init__(self, search: ImageSearch, kind: SourceKind) -> None:
        self._search = search
        self.kind = kind

    def name(self) -> str:
        return self._search.name()

    @abstractmethod
    def query_for(self, variant: QueryVariant) -> str | None:
        """Return the query this source uses for the round, or None if it sits the round out."""
        ...

    @abstractmethod
    async def search(self, query: str, ledger: CostLedger) -> list[Candidate]:
        ...

    def _to_candidates(self, hits) -> list[Candidate]:
        return [Candidate(url=h.url, source_kind=self.kind, attribution=h.credit) for h in hits]


class StockSource(CandidateSource):
    def query_for(self, variant: QueryVariant) -> str | None:
        return variant.stock_query

    async def search(self, query: str, ledger: CostLedger) -> list[Candidate]:
        try:
            hits = await self._search.query(query)
        except Exception as exc:
            logger.warning("%s search failed for %r: %s", self.name(), query, exc)
            return []
        logger.debug("%s returned %d results for %r", self.name(), len(hits), query)
        return self._to_candidates(hits)


class WebSearchSource(CandidateSource):
    """Web image search. Metered per successful call, not per result."""

    def __init__(self, search: ImageSearch) -> None:
        super().__init__(search, SourceKind.WEB_SEARCH)

    def query_for(self, variant: QueryVariant) -> str | None:
        return variant.web_search_query

    async def search(self, query: str, ledger: CostLedger) -> list[Candidate]:
        try:
            hits = await self._search.query(query)
        except Exception as exc:
            logger.warning("%s search failed for %r: %s", self.name(), query, exc)
            return []
        ledger.record_call(WEB_SEARCH, model=self.name())
        logger.debug("%s returned %d results for %r", self.name(), len(hits), query)
        return self._to_candidates(hits)


class GenerativeSource:
    """Last-resort image synthesis. Its output skips the quality gate."""

    def __init__(self, generator: ImageGenerator, suffix: str, size: str | None = None) -> None:
        self._generator = generator
        self._suffix = suffix.strip()
        self._size = size

    def build_prompt(self, prompt: str, style_hint: str | None) -> str:
        parts = [prompt.strip().rstrip(".")]
        if style_hint:
            parts.append(style_hint.strip().rstrip("."))
        parts.append(self._suffix)
        return ". ".join(p for p in parts if p)

    async def generate(self, prompt: str, style_hint: str | None, ledger: CostLedger) -> ScoredCandidate:
        """Generate one image.

        Raises:
            ProviderError: If the generator fails. There are no partial results.
        """
        url = await self._generator.create(self.build_prompt(prompt, style_hint), self._size)
        ledger.record_call(GENERATIVE_IMAGE, model=self._generator.model_string())
        return ScoredCandidate(
            candidate=Candidate(url=url, source_kind=SourceKind.GENERATIVE, attribution=GENERATED_ATTRIBUTION),
            score=GENERATED_SCORE,
            rationale=GENERATED_RATIONALE,
        )
