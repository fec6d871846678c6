"""Waterfall controller: retrieval rounds with decaying thresholds, then generation."""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from imagefinder.assembler import RoundAssembler
from imagefinder.costs import CostLedger
from imagefinder.judge import QualityJudge, pick_best_from_batch
from imagefinder.models import Intent, QueryVariant, RoundResult, WaterfallResult
from imagefinder.sources import GenerativeSource

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD_DELTAS = (0, -1, -2)
MIN_THRESHOLD = 1


class AllImageSourcesFailed(RuntimeError):
    """Raised when every round failed and generation failed too."""


@dataclass(frozen=True)
class RoundStrategy:
    variant: QueryVariant
    threshold_delta: int


def effective_threshold(base: int, delta: int) -> int:
    return max(MIN_THRESHOLD, base + delta)


def build_strategies(intent: Intent, deltas: tuple[int, ...] = DEFAULT_THRESHOLD_DELTAS) -> list[RoundStrategy]:
    """Pair each query variant with its threshold delta, in planner order.

    Missing variants become empty ones so every round still runs and the
    threshold keeps decaying.
    """
    strategies: list[RoundStrategy] = []
    for i, delta in enumerate(deltas):
        if i < len(intent.query_variants):
            variant = intent.query_variants[i]
        else:
            variant = QueryVariant()
        strategies.append(RoundStrategy(variant=variant, threshold_delta=delta))
    return strategies


class WaterfallController:
    def __init__(
        self,
        assembler: RoundAssembler,
        judge: QualityJudge,
        generator: GenerativeSource,
        threshold_deltas: tuple[int, ...] = DEFAULT_THRESHOLD_DELTAS,
    ) -> None:
        self._assembler = assembler
        self._judge = judge
        self._generator = generator
        self._threshold_deltas = tuple(threshold_deltas)

    async def run_round(self, index: int, strategy: RoundStrategy, intent: Intent, ledger: CostLedger) -> RoundResult:
        threshold = effective_threshold(intent.accept_threshold, strategy.threshold_delta)
        result = RoundResult(index=index, threshold=threshold, query_variant=strategy.variant)

        candidates = await self._assembler.assemble_round(strategy.variant, intent, ledger)
        result.candidates_found = len(candidates)
        if not candidates:
            logger.info("Round %d: no candidates", index)
            return result

        result.scored, result.failures = await self._judge.score_batch(candidates, intent, ledger)
        result.winner = pick_best_from_batch(result.scored, threshold)
        return result

    async def run(
        self,
        intent: Intent,
        ledger: CostLedger,
        on_round_complete: Callable[[RoundResult], None] | None = None,
    ) -> WaterfallResult:
        """Run rounds until one accepts a candidate, else generate.

        Raises:
            AllImageSourcesFailed: If no round produced a winner and generation failed.
        """
        rounds: list[RoundResult] = []

        for index, strategy in enumerate(build_strategies(intent, self._threshold_deltas), start=1):
            logger.info(
                "Round %d: stock=%r web=%r threshold=%d",
                index,
                strategy.variant.stock_query,
                strategy.variant.web_search_query,
                effective_threshold(intent.accept_threshold, strategy.threshold_delta),
            )
            result = await self.run_round(index, strategy, intent, ledger)
            rounds.append(result)

            if on_round_complete:
                on_round_complete(result)

            if result.winner is not None:
                logger.info(
                    "Winner in round %d: score %d/10 from %s",
                    index,
                    result.winner.score,
                    result.winner.source_kind.value,
                )
                return WaterfallResult(intent=intent, winner=result.winner, rounds=rounds)

            if result.scored:
                best = max(s.score for s in result.scored)
                logger.info("Round %d: best score %d < threshold %d, continuing", index, best, result.threshold)

        logger.info("All retrieval rounds exhausted, generating image")
        try:
            generated = await self._generator.generate(intent.fallback_prompt, intent.visual_style_hint, ledger)
        except Exception as exc:
            logger.error("Image generation failed: %s", exc)
            raise AllImageSourcesFailed(f"All image sources failed: {exc}") from exc

        return WaterfallResult(intent=intent, winner=generated, rounds=rounds, generated=True)
