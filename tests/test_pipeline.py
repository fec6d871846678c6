"""Tests for imagefinder/pipeline.py: end-to-end requests over test doubles."""

import json
from unittest.mock import AsyncMock

import pytest

from config.config_loader import AppConfig, ModelConfig, SourceConfig
from imagefinder.costs import GENERATIVE_IMAGE, KEYWORD_EXTRACTION, VISION_SCORING, WEB_SEARCH
from imagefinder.models import SourceKind
from imagefinder.pipeline import (
    ConfigurationError,
    ImageFinder,
    build_failure_response,
    build_response,
    build_sources,
)
from imagefinder.planner import QueryPlanner, UpstreamError
from imagefinder.providers.base import ProviderError
from imagefinder.sources import StockSource, WebSearchSource
from imagefinder.waterfall import AllImageSourcesFailed
from tests.conftest import (
    GENERATED_URL,
    MockGenerator,
    MockLanguageModel,
    MockSearch,
    ScriptedJudgeModel,
    build_controller,
    failing_search,
    verdict,
)

PLAN = {
    "topic": "nvidia_gpu_launch",
    "search_queries": ["nvidia gpu datacenter", "gpu datacenter", "glowing circuit board"],
    "dalle_prompt": "A futuristic datacenter aisle with glowing GPUs",
    "visual_theme": "Powerful GPU hardware",
    "main_entity": "Nvidia",
    "forbidden_brands": ["AMD"],
    "min_score": 7,
}


def _finder(prompts, pricing, defaults, controller, plan: dict | None = None) -> ImageFinder:
    planner_model = MockLanguageModel(json.dumps(plan or PLAN), model="gpt-4o-mini", input_units=900, output_units=180)
    return ImageFinder(QueryPlanner(planner_model, prompts), controller, pricing, defaults)


async def test_find_accepts_retrieved_image(sample_prompts_config, sample_pricing, sample_defaults_config):
    pexels = MockSearch("pexels", ["https://p/1.jpg", "https://p/2.jpg"])
    judge_model = ScriptedJudgeModel({"https://p/1.jpg": verdict(8, "Great GPU shot"), "https://p/2.jpg": verdict(5)})
    controller = build_controller(judge_model, sample_prompts_config, pexels=pexels)
    finder = _finder(sample_prompts_config, sample_pricing, sample_defaults_config, controller)

    outcome = await finder.find("Nvidia launched a new GPU")

    assert outcome.ledger.finalized
    assert outcome.local_path is None
    response = build_response(outcome)
    assert response["success"] is True
    assert response["image_url"] == "https://p/1.jpg"
    assert response["source"] == "stock-a"
    assert response["attribution"] == "pexels photographer"
    assert response["score"] == 8
    assert response["score_reason"] == "Great GPU shot"
    assert response["generated"] is False
    assert response["topic"] == "nvidia_gpu_launch"
    assert response["main_entity"] == "Nvidia"
    assert response["rounds_run"] == 1

    costs = response["cost_breakdown"]
    assert costs[KEYWORD_EXTRACTION]["calls"] == 1
    assert costs[VISION_SCORING]["calls"] == 2
    expected = (900 * 0.15 + 180 * 0.60) / 1e6 + 2 * (300 * 2.50 + 30 * 10.00) / 1e6
    assert costs["total_usd"] == pytest.approx(expected, abs=1e-6)


async def test_find_all_sources_down_generates(sample_prompts_config, sample_pricing, sample_defaults_config):
    controller = build_controller(
        ScriptedJudgeModel({}),
        sample_prompts_config,
        pexels=failing_search("pexels"),
        unsplash=failing_search("unsplash"),
        serp=failing_search("serpapi"),
    )
    finder = _finder(sample_prompts_config, sample_pricing, sample_defaults_config, controller)

    outcome = await finder.find("Nvidia launched a new GPU")
    response = build_response(outcome)

    assert response["generated"] is True
    assert response["image_url"] == GENERATED_URL
    assert response["source"] == "generative"
    assert response["score"] is None
    assert response["rounds_run"] == 3
    costs = response["cost_breakdown"]
    assert costs[KEYWORD_EXTRACTION]["calls"] == 1
    assert costs[VISION_SCORING]["calls"] == 0
    assert costs[WEB_SEARCH]["calls"] == 0
    assert costs[GENERATIVE_IMAGE]["calls"] == 1
    assert costs[GENERATIVE_IMAGE]["usd"] == pytest.approx(0.08)


async def test_find_min_score_override(sample_prompts_config, sample_pricing, sample_defaults_config):
    # Planner asks for 7; caller lowers the bar to 5, so a 5 wins in round 1.
    pexels = MockSearch("pexels", ["https://p/1.jpg"])
    controller = build_controller(ScriptedJudgeModel({"https://p/1.jpg": verdict(5)}), sample_prompts_config, pexels=pexels)
    finder = _finder(sample_prompts_config, sample_pricing, sample_defaults_config, controller)

    outcome = await finder.find("post", min_score=5)

    assert outcome.result.intent.accept_threshold == 5
    assert outcome.result.rounds[0].threshold == 5
    assert outcome.result.winner.url == "https://p/1.jpg"


async def test_find_each_request_gets_fresh_ledger(sample_prompts_config, sample_pricing, sample_defaults_config):
    pexels = MockSearch("pexels", ["https://p/1.jpg"])
    controller = build_controller(ScriptedJudgeModel({"https://p/1.jpg": verdict(9)}), sample_prompts_config, pexels=pexels)
    finder = _finder(sample_prompts_config, sample_pricing, sample_defaults_config, controller)

    first = await finder.find("post one")
    second = await finder.find("post two")

    assert first.ledger is not second.ledger
    assert second.ledger.entry(KEYWORD_EXTRACTION).calls == 1
    assert second.ledger.entry(VISION_SCORING).calls == 1


async def test_find_downloads_winner(sample_prompts_config, sample_pricing, sample_defaults_config, tmp_path, monkeypatch):
    pexels = MockSearch("pexels", ["https://p/1.jpg"])
    controller = build_controller(ScriptedJudgeModel({"https://p/1.jpg": verdict(9)}), sample_prompts_config, pexels=pexels)
    finder = _finder(sample_prompts_config, sample_pricing, sample_defaults_config, controller)

    persist = AsyncMock(side_effect=lambda url, dest, **kwargs: dest)
    monkeypatch.setattr("imagefinder.pipeline.persist_candidate", persist)

    outcome = await finder.find("post", download_dir=tmp_path)

    assert outcome.local_path.parent == tmp_path
    assert outcome.local_path.name.startswith("nvidia_gpu_launch_")
    assert outcome.local_path.suffix == ".jpg"
    args, kwargs = persist.call_args
    assert args[0] == "https://p/1.jpg"
    assert kwargs["width"] == 1200
    assert kwargs["height"] == 628
    assert build_response(outcome)["local_path"] == str(outcome.local_path)


async def test_find_download_failure_propagates(sample_prompts_config, sample_pricing, sample_defaults_config, tmp_path, monkeypatch):
    pexels = MockSearch("pexels", ["https://p/1.jpg"])
    controller = build_controller(ScriptedJudgeModel({"https://p/1.jpg": verdict(9)}), sample_prompts_config, pexels=pexels)
    finder = _finder(sample_prompts_config, sample_pricing, sample_defaults_config, controller)
    monkeypatch.setattr(
        "imagefinder.pipeline.persist_candidate",
        AsyncMock(side_effect=ProviderError("download", "Failed to fetch")),
    )

    with pytest.raises(ProviderError):
        await finder.find("post", download_dir=tmp_path)


async def test_find_planner_failure_raises(sample_prompts_config, sample_pricing, sample_defaults_config):
    controller = build_controller(ScriptedJudgeModel({}), sample_prompts_config)
    planner_model = MockLanguageModel()
    planner_model.complete = AsyncMock(side_effect=ProviderError("planner", "HTTP 401"))
    finder = ImageFinder(QueryPlanner(planner_model, sample_prompts_config), controller, sample_pricing, sample_defaults_config)

    with pytest.raises(UpstreamError):
        await finder.find("post")


async def test_find_generation_failure_raises(sample_prompts_config, sample_pricing, sample_defaults_config):
    generator = MockGenerator()
    generator.create.side_effect = ProviderError("generator", "billing hard limit")
    controller = build_controller(ScriptedJudgeModel({}), sample_prompts_config, generator=generator)
    finder = _finder(sample_prompts_config, sample_pricing, sample_defaults_config, controller)

    with pytest.raises(AllImageSourcesFailed) as excinfo:
        await finder.find("post")

    response = build_failure_response(excinfo.value)
    assert response == {"success": False, "error": "All image sources failed: [generator] billing hard limit"}


def test_build_sources_maps_kinds():
    searches = {
        "pexels": MockSearch("pexels"),
        "serpapi": MockSearch("serpapi"),
        "unsplash": MockSearch("unsplash"),
    }
    sources = build_sources(searches)
    kinds = {s.name(): s.kind for s in sources}
    assert kinds == {"pexels": SourceKind.STOCK_A, "unsplash": SourceKind.STOCK_B, "serpapi": SourceKind.WEB_SEARCH}
    assert isinstance(sources[1], WebSearchSource)
    assert all(isinstance(s, StockSource) for s in sources if s.name() != "serpapi")


def _app_config(defaults, prompts, pricing, available_models: set[str], available_sources: set[str]) -> AppConfig:
    models = {
        "planner": ModelConfig("planner", "openai", "gpt-4o-mini", "OPENAI_API_KEY", 30, 500),
        "judge": ModelConfig("judge", "openai", "gpt-4o", "OPENAI_API_KEY", 45, 150),
        "generator": ModelConfig("generator", "openai", "dall-e-3", "OPENAI_API_KEY", 120, 0, size="1792x1024"),
    }
    sources = {
        "pexels": SourceConfig("pexels", "PEXELS_API_KEY", 15, 8),
        "serpapi": SourceConfig("serpapi", "SERPAPI_API_KEY", 15, 5),
    }
    return AppConfig(
        defaults=defaults,
        models=models,
        sources=sources,
        pricing=pricing,
        prompts=prompts,
        available_models=available_models,
        available_sources=available_sources,
    )


def test_from_config_requires_planner_key(sample_defaults_config, sample_prompts_config, sample_pricing):
    config = _app_config(sample_defaults_config, sample_prompts_config, sample_pricing, set(), set())
    with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
        ImageFinder.from_config(config)


def test_from_config_requires_generator(sample_defaults_config, sample_prompts_config, sample_pricing, monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    config = _app_config(sample_defaults_config, sample_prompts_config, sample_pricing, {"planner", "judge"}, set())
    with pytest.raises(ConfigurationError, match="generator"):
        ImageFinder.from_config(config)


def test_from_config_builds_with_available_sources(sample_defaults_config, sample_prompts_config, sample_pricing, monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("PEXELS_API_KEY", "px-test")
    config = _app_config(
        sample_defaults_config,
        sample_prompts_config,
        sample_pricing,
        {"planner", "judge", "generator"},
        {"pexels"},
    )

    finder = ImageFinder.from_config(config)

    assert isinstance(finder, ImageFinder)
    assert finder.pricing is sample_pricing
    assert finder.defaults is sample_defaults_config


def test_build_response_failure_shape():
    response = build_failure_response(UpstreamError("Keyword extraction failed: boom"))
    assert response["success"] is False
    assert "boom" in response["error"]
