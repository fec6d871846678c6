"""One image-finding request end to end: plan, waterfall, download, response."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from pathlib import Path

from config.config_loader import AppConfig, DefaultsConfig, PricingConfig
from imagefinder.assembler import RoundAssembler
from imagefinder.costs import CostLedger
from imagefinder.judge import QualityJudge
from imagefinder.models import RoundResult, SourceKind, WaterfallResult
from imagefinder.output import slug
from imagefinder.persist import persist_candidate
from imagefinder.planner import QueryPlanner
from imagefinder.providers.anthropic import AnthropicProvider
from imagefinder.providers.base import ImageSearch, LanguageModel
from imagefinder.providers.openai_provider import OpenAIImageGenerator, OpenAIProvider
from imagefinder.providers.serpapi import SerpApiImageSearch
from imagefinder.providers.stock import PexelsSearch, UnsplashSearch
from imagefinder.sources import CandidateSource, GenerativeSource, StockSource, WebSearchSource
from imagefinder.waterfall import WaterfallController

logger = logging.getLogger(__name__)

LANGUAGE_MODEL_CLASSES: dict[str, type[LanguageModel]] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
}

SEARCH_CLASSES: dict[str, type[ImageSearch]] = {
    "pexels": PexelsSearch,
    "unsplash": UnsplashSearch,
    "serpapi": SerpApiImageSearch,
}

STOCK_KINDS: dict[str, SourceKind] = {
    "pexels": SourceKind.STOCK_A,
    "unsplash": SourceKind.STOCK_B,
}


class ConfigurationError(RuntimeError):
    """Raised when a required model role cannot be built."""


@dataclass
class FindImageOutcome:
    result: WaterfallResult
    ledger: CostLedger
    local_path: Path | None = None
    duration_sec: float = 0.0


def _build_language_model(config: AppConfig, role: str) -> LanguageModel:
    if role not in config.models:
        raise ConfigurationError(f"No '{role}' model configured")
    model_cfg = config.models[role]
    if role not in config.available_models:
        raise ConfigurationError(f"Missing API key for '{role}' model: set {model_cfg.api_key_env}")
    if model_cfg.sdk not in LANGUAGE_MODEL_CLASSES:
        raise ConfigurationError(f"Unknown sdk '{model_cfg.sdk}' for '{role}' model")
    return LANGUAGE_MODEL_CLASSES[model_cfg.sdk](model_cfg)


def build_searches(config: AppConfig) -> dict[str, ImageSearch]:
    """Build every image search that has an API key. Returns dict keyed by name."""
    searches: dict[str, ImageSearch] = {}
    for name in sorted(config.available_sources):
        if name not in SEARCH_CLASSES:
            logger.warning("Image source '%s' unknown, skipping", name)
            continue
        try:
            searches[name] = SEARCH_CLASSES[name](config.sources[name])
        except Exception as exc:
            logger.warning("Failed to instantiate image source '%s': %s", name, exc)
    return searches


def build_sources(searches: dict[str, ImageSearch]) -> list[CandidateSource]:
    sources: list[CandidateSource] = []
    for name, search in searches.items():
        if name in STOCK_KINDS:
            sources.append(StockSource(search, STOCK_KINDS[name]))
        else:
            sources.append(WebSearchSource(search))
    return sources


class ImageFinder:
    """Wired pipeline. Built once per process; each ``find`` call is one request."""

    def __init__(
        self,
        planner: QueryPlanner,
        controller: WaterfallController,
        pricing: PricingConfig,
        defaults: DefaultsConfig,
    ) -> None:
        self.planner = planner
        self.controller = controller
        self.pricing = pricing
        self.defaults = defaults

    @classmethod
    def from_config(cls, config: AppConfig) -> "ImageFinder":
        """Build providers from config.

        Raises:
            ConfigurationError: If the planner, judge or generator cannot be built.
        """
        planner_model = _build_language_model(config, "planner")
        judge_model = _build_language_model(config, "judge")

        generator_cfg = config.models.get("generator")
        if generator_cfg is None or "generator" not in config.available_models:
            raise ConfigurationError("Image generator is not configured (needs an API key)")
        generator = OpenAIImageGenerator(generator_cfg)

        sources = build_sources(build_searches(config))
        if not sources:
            logger.warning("No image search sources configured; every request will fall back to generation")

        planner = QueryPlanner(
            planner_model,
            config.prompts,
            prefix_chars=config.defaults.post_prefix_chars,
            max_output_units=config.models["planner"].max_tokens,
            rounds=len(config.defaults.round_threshold_deltas),
        )
        controller = WaterfallController(
            assembler=RoundAssembler(sources, cap=config.defaults.max_candidates_per_round),
            judge=QualityJudge(judge_model, config.prompts, max_output_units=config.models["judge"].max_tokens),
            generator=GenerativeSource(generator, config.prompts.generation_suffix, size=generator_cfg.size),
            threshold_deltas=tuple(config.defaults.round_threshold_deltas),
        )
        return cls(planner, controller, config.pricing, config.defaults)

    async def find(
        self,
        post_text: str,
        *,
        min_score: int | None = None,
        download_dir: Path | None = None,
        on_round_complete: Callable[[RoundResult], None] | None = None,
    ) -> FindImageOutcome:
        """Run one request with a fresh cost ledger.

        Args:
            post_text: The post to illustrate.
            min_score: Overrides the planner's acceptance threshold for this request.
            download_dir: If set, the winner is downloaded and resized into this folder.
            on_round_complete: Optional callback invoked after each retrieval round.

        Raises:
            UpstreamError: If planning fails.
            AllImageSourcesFailed: If retrieval and generation both fail.
            ProviderError: If downloading the winner fails.
        """
        start = time.monotonic()
        ledger = CostLedger(self.pricing)

        intent = await self.planner.plan(post_text, ledger)
        if min_score is not None:
            intent = replace(intent, accept_threshold=max(1, min(10, int(min_score))))

        result = await self.controller.run(intent, ledger, on_round_complete=on_round_complete)

        local_path: Path | None = None
        if download_dir is not None:
            filename = f"{slug(intent.topic)}_{int(time.time() * 1000)}.jpg"
            local_path = await persist_candidate(
                result.winner.url,
                download_dir / filename,
                width=self.defaults.image_width,
                height=self.defaults.image_height,
                timeout_sec=self.defaults.download_timeout_sec,
            )

        ledger.finalize()
        return FindImageOutcome(
            result=result,
            ledger=ledger,
            local_path=local_path,
            duration_sec=time.monotonic() - start,
        )


def build_response(outcome: FindImageOutcome) -> dict:
    """Success document: provenance, gated score, topic, cost breakdown."""
    result = outcome.result
    winner = result.winner
    return {
        "success": True,
        "image_url": winner.url,
        "source": winner.source_kind.value,
        "attribution": winner.attribution,
        "score": None if result.generated else winner.score,
        "score_reason": winner.rationale or None,
        "generated": result.generated,
        "topic": result.intent.topic,
        "main_entity": result.intent.main_entity,
        "rounds_run": len(result.rounds),
        "local_path": str(outcome.local_path) if outcome.local_path else None,
        "cost_breakdown": outcome.ledger.as_dict(),
    }


def build_failure_response(exc: Exception) -> dict:
    return {"success": False, "error": str(exc)}
