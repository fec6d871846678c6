"""Shared pytest fixtures and test doubles."""

import json
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import DefaultsConfig, PricingConfig, PromptsConfig, TokenPrice
from imagefinder.assembler import RoundAssembler
from imagefinder.costs import CostLedger
from imagefinder.judge import QualityJudge
from imagefinder.models import Candidate, Completion, Intent, QueryVariant, SourceKind
from imagefinder.providers.base import ImageGenerator, ImageHit, ImageSearch, LanguageModel, ProviderError
from imagefinder.sources import GenerativeSource, StockSource, WebSearchSource
from imagefinder.waterfall import WaterfallController

GENERATED_URL = "https://images.example/generated.png"


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        quality_guide="You pick LinkedIn header images.",
        planner='Post:\n"""\n{post}\n"""\nReply as JSON {{"topic": "..."}}',
        judge="Theme: {visual_theme}\nSubject: {main_entity}\nForbidden: {forbidden}",
        generation_suffix="NO text, NO logos, NO watermarks, NO people, landscape 16:9.",
    )


@pytest.fixture
def sample_pricing() -> PricingConfig:
    return PricingConfig(
        tokens={
            "gpt-4o-mini": TokenPrice(input=0.15, output=0.60),
            "gpt-4o": TokenPrice(input=2.50, output=10.00),
        },
        web_search_call=0.001,
        generated_image=0.080,
    )


@pytest.fixture
def sample_defaults_config(tmp_path: Path) -> DefaultsConfig:
    return DefaultsConfig(
        output_dir=tmp_path / "output",
        inbox_dir=tmp_path / "inbox",
        archive_dir=tmp_path / "inbox" / "archive",
    )


@pytest.fixture
def ledger(sample_pricing: PricingConfig) -> CostLedger:
    return CostLedger(sample_pricing)


def make_intent(
    threshold: int = 7,
    variants: tuple[QueryVariant, ...] | None = None,
    main_entity: str | None = "Nvidia",
    forbidden: frozenset[str] = frozenset({"AMD"}),
) -> Intent:
    if variants is None:
        variants = (
            QueryVariant("nvidia gpu datacenter", "nvidia gpu datacenter"),
            QueryVariant("gpu datacenter", "gpu datacenter"),
            QueryVariant("glowing circuits", "glowing circuits"),
        )
    return Intent(
        topic="nvidia_gpu_launch",
        query_variants=variants,
        main_entity=main_entity,
        forbidden_entities=forbidden,
        accept_threshold=threshold,
        fallback_prompt="A futuristic datacenter aisle",
        visual_style_hint=None,
        visual_theme="Powerful GPU hardware in a modern datacenter",
    )


@pytest.fixture
def sample_intent() -> Intent:
    return make_intent()


def make_candidate(url: str, kind: SourceKind = SourceKind.STOCK_A) -> Candidate:
    return Candidate(url=url, source_kind=kind, attribution="Jane Doe")


def verdict(score: int, reason: str = "fine", forbidden: bool = False) -> str:
    return json.dumps({"score": score, "reason": reason, "has_forbidden_brand": forbidden})


class MockLanguageModel(LanguageModel):
    """Test double LanguageModel."""

    def __init__(self, text: str = "{}", model: str = "gpt-4o", input_units: int = 100, output_units: int = 20) -> None:
        self._model = model
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because complete is defined in the class body below.
        self.complete = AsyncMock(  # type: ignore[assignment]
            return_value=Completion(text=text, input_units=input_units, output_units=output_units)
        )

    def name(self) -> str:
        return "mock"

    def model_string(self) -> str:
        return self._model

    async def complete(self, system_guide, user_prompt, max_output_units, image_url=None) -> Completion:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return Completion(text="{}", input_units=0, output_units=0)


class ScriptedJudgeModel(MockLanguageModel):
    """Vision model whose verdict depends on the image URL.

    ``verdicts`` maps URL -> reply text, or -> an exception to raise.
    """

    def __init__(self, verdicts: dict, model: str = "gpt-4o") -> None:
        super().__init__(model=model)
        self.verdicts = verdicts

        async def _reply(system_guide, user_prompt, max_output_units, image_url=None):
            outcome = self.verdicts.get(image_url, verdict(1, "unknown image"))
            if isinstance(outcome, Exception):
                raise outcome
            return Completion(text=outcome, input_units=300, output_units=30)

        self.complete = AsyncMock(side_effect=_reply)


class MockSearch(ImageSearch):
    """Test double ImageSearch returning fixed hits."""

    def __init__(self, search_name: str, urls: list[str] | None = None) -> None:
        self._name = search_name
        hits = [ImageHit(url=u, credit=f"{search_name} photographer") for u in (urls or [])]
        self.query = AsyncMock(return_value=hits)  # type: ignore[assignment]

    def name(self) -> str:
        return self._name

    async def query(self, query: str) -> list[ImageHit]:  # type: ignore[override]
        return []


class MockGenerator(ImageGenerator):
    def __init__(self, url: str = GENERATED_URL) -> None:
        self.create = AsyncMock(return_value=url)  # type: ignore[assignment]

    def name(self) -> str:
        return "generator"

    def model_string(self) -> str:
        return "dall-e-3"

    async def create(self, prompt: str, size: str | None = None) -> str:  # type: ignore[override]
        return GENERATED_URL


def failing_search(search_name: str) -> MockSearch:
    search = MockSearch(search_name)
    search.query = AsyncMock(side_effect=ProviderError(search_name, "HTTP 503: unavailable"))
    return search


def build_controller(
    judge_model: LanguageModel,
    prompts: PromptsConfig,
    pexels: ImageSearch | None = None,
    unsplash: ImageSearch | None = None,
    serp: ImageSearch | None = None,
    generator: ImageGenerator | None = None,
) -> WaterfallController:
    sources = []
    if pexels is not None:
        sources.append(StockSource(pexels, SourceKind.STOCK_A))
    if unsplash is not None:
        sources.append(StockSource(unsplash, SourceKind.STOCK_B))
    if serp is not None:
        sources.append(WebSearchSource(serp))
    return WaterfallController(
        assembler=RoundAssembler(sources),
        judge=QualityJudge(judge_model, prompts),
        generator=GenerativeSource(generator or MockGenerator(), prompts.generation_suffix),
    )
