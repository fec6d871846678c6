"""Quality judge: vision-model scoring of candidates, batch reduction."""

import logging

from config.config_loader import PromptsConfig
from imagefinder.costs import VISION_SCORING, CostLedger
from imagefinder.models import Candidate, Intent, ScoredCandidate
from imagefinder.parsing import UpstreamParseError, parse_json_object
from imagefinder.providers.base import LanguageModel, ProviderError
from imagefinder.settle import settle_all

logger = logging.getLogger(__name__)

MIN_SCORE = 1
MAX_SCORE = 10


class JudgeUnavailable(Exception):
    """Raised when one candidate cannot be scored."""

    def __init__(self, candidate: Candidate, message: str) -> None:
        self.candidate = candidate
        super().__init__(f"{candidate.source_kind.value} {candidate.url}: {message}")


def _coerce_score(value) -> int:
    if isinstance(value, bool):
        raise ValueError("score must be a number")
    score = int(round(float(value)))
    return max(MIN_SCORE, min(MAX_SCORE, score))


def _coerce_flag(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def pick_best_from_batch(scored: list[ScoredCandidate], threshold: int) -> ScoredCandidate | None:
    """Return the top-scoring brand-safe candidate if it clears ``threshold``.

    Ties keep batch order (sorted() is stable), so earlier-discovered
    candidates win.
    """
    safe = [s for s in scored if not s.violates_brand_safety]
    if not safe:
        return None
    ranked = sorted(safe, key=lambda s: s.score, reverse=True)
    best = ranked[0]
    if best.score >= threshold:
        return best
    return None


class QualityJudge:
    def __init__(self, model: LanguageModel, prompts: PromptsConfig, max_output_units: int = 150) -> None:
        self._model = model
        self._prompts = prompts
        self._max_output_units = max_output_units

    def build_prompt(self, intent: Intent) -> str:
        forbidden = ", ".join(sorted(intent.forbidden_entities)) or "none"
        return self._prompts.judge.format(
            visual_theme=intent.visual_theme or intent.topic,
            main_entity=intent.main_entity or "general technology",
            forbidden=forbidden,
        )

    async def score(self, candidate: Candidate, intent: Intent, ledger: CostLedger) -> ScoredCandidate:
        """Score one candidate.

        Raises:
            JudgeUnavailable: On model failure or an unparseable verdict.
        """
        try:
            completion = await self._model.complete(
                self._prompts.quality_guide,
                self.build_prompt(intent),
                self._max_output_units,
                image_url=candidate.url,
            )
        except ProviderError as exc:
            raise JudgeUnavailable(candidate, str(exc)) from exc

        # Tokens are spent once the model replies, even if the verdict is unusable.
        ledger.record_tokens(
            VISION_SCORING,
            self._model.model_string(),
            completion.input_units,
            completion.output_units,
        )

        try:
            verdict = parse_json_object(completion.text)
            score = _coerce_score(verdict["score"])
        except (UpstreamParseError, KeyError, TypeError, ValueError) as exc:
            raise JudgeUnavailable(candidate, f"Unusable verdict: {exc}") from exc

        return ScoredCandidate(
            candidate=candidate,
            score=score,
            rationale=str(verdict.get("reason") or ""),
            violates_brand_safety=_coerce_flag(verdict.get("has_forbidden_brand", False)),
        )

    async def score_batch(
        self,
        candidates: list[Candidate],
        intent: Intent,
        ledger: CostLedger,
    ) -> tuple[list[ScoredCandidate], int]:
        """Score all candidates concurrently.

        Returns:
            (scored candidates in batch order, number of failed judge calls)
        """
        logger.info("Inspecting %d candidates with %s", len(candidates), self._model.model_string())
        outcomes = await settle_all([self.score(c, intent, ledger) for c in candidates])

        scored: list[ScoredCandidate] = []
        failures = 0
        for outcome in outcomes:
            if isinstance(outcome, Exception):
                failures += 1
                logger.warning("Vision scoring error: %s", outcome)
                continue
            flag = " FORBIDDEN BRAND" if outcome.violates_brand_safety else ""
            logger.info(
                "[%d/10] %s: %s%s",
                outcome.score,
                outcome.source_kind.value,
                outcome.rationale,
                flag,
            )
            scored.append(outcome)
        return scored, failures
