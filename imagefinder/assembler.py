"""Round assembly: parallel source fan-out and round-robin merge."""

import logging

from imagefinder.costs import CostLedger
from imagefinder.models import Candidate, Intent, QueryVariant, SourceKind
from imagefinder.settle import settle_all
from imagefinder.sources import CandidateSource

logger = logging.getLogger(__name__)

# Web results first: most likely to be real photos of a named entity.
SOURCE_PRIORITY = (SourceKind.WEB_SEARCH, SourceKind.STOCK_A, SourceKind.STOCK_B)

DEFAULT_ROUND_CAP = 15


def interleave(batches: list[list[Candidate]], cap: int) -> list[Candidate]:
    """Round-robin merge, one item per batch per step, stopping at ``cap``.

    Exhausted batches drop out; the rest keep contributing.
    """
    merged: list[Candidate] = []
    longest = max((len(b) for b in batches), default=0)
    for i in range(longest):
        for batch in batches:
            if len(merged) >= cap:
                return merged
            if i < len(batch):
                merged.append(batch[i])
    return merged


def _priority(source: CandidateSource) -> int:
    try:
        return SOURCE_PRIORITY.index(source.kind)
    except ValueError:
        return len(SOURCE_PRIORITY)


class RoundAssembler:
    def __init__(self, sources: list[CandidateSource], cap: int = DEFAULT_ROUND_CAP) -> None:
        # sorted() is stable, so equal-priority sources keep registration order
        self._sources = sorted(sources, key=_priority)
        self._cap = cap

    @property
    def sources(self) -> list[CandidateSource]:
        return list(self._sources)

    async def assemble_round(
        self,
        variant: QueryVariant,
        intent: Intent,
        ledger: CostLedger,
    ) -> list[Candidate]:
        """Query every applicable source concurrently and merge into one batch.

        A source applies when its query field is present in the variant.
        Failed sources contribute nothing; the round is never aborted.
        """
        applicable: list[tuple[CandidateSource, str]] = []
        for source in self._sources:
            query = source.query_for(variant)
            if query:
                applicable.append((source, query))

        if not applicable:
            logger.info("No applicable sources for this round (topic=%s)", intent.topic)
            return []

        outcomes = await settle_all([source.search(query, ledger) for source, query in applicable])

        batches: list[list[Candidate]] = []
        for (source, query), outcome in zip(applicable, outcomes):
            if isinstance(outcome, Exception):
                logger.warning("%s failed for %r: %s", source.name(), query, outcome)
                batches.append([])
            else:
                batches.append(outcome)

        merged = interleave(batches, self._cap)
        logger.info(
            "Collected %d candidates from %s",
            len(merged),
            ", ".join(f"{s.name()}={len(b)}" for (s, _), b in zip(applicable, batches)),
        )
        return merged
