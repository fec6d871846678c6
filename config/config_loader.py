"""Load settings.yaml into typed dataclasses. Checks API keys at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    base_url: str | None = None
    size: str | None = None        # image generators only
    quality: str | None = None     # image generators only


@dataclass
class SourceConfig:
    name: str
    api_key_env: str
    timeout_sec: int
    per_page: int


@dataclass
class TokenPrice:
    input: float   # USD per 1M input tokens
    output: float  # USD per 1M output tokens


@dataclass
class PricingConfig:
    tokens: dict[str, TokenPrice] = field(default_factory=dict)
    web_search_call: float = 0.0
    generated_image: float = 0.0


@dataclass
class PromptsConfig:
    quality_guide: str
    planner: str
    judge: str
    generation_suffix: str


@dataclass
class DefaultsConfig:
    output_dir: Path
    inbox_dir: Path
    archive_dir: Path
    post_prefix_chars: int = 800
    max_candidates_per_round: int = 15
    round_threshold_deltas: list[int] = field(default_factory=lambda: [0, -1, -2])
    image_width: int = 1200
    image_height: int = 628
    download_timeout_sec: int = 30


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    models: dict[str, ModelConfig]
    sources: dict[str, SourceConfig]
    pricing: PricingConfig
    prompts: PromptsConfig
    available_models: set[str] = field(default_factory=set)
    available_sources: set[str] = field(default_factory=set)


def _has_key(env_name: str) -> bool:
    return bool(os.environ.get(env_name, "").strip())


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs missing API keys but does not raise. Callers check
    available_models / available_sources.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        output_dir=Path(defaults_raw["output_dir"]),
        inbox_dir=Path(defaults_raw["inbox_dir"]),
        archive_dir=Path(defaults_raw["archive_dir"]),
        post_prefix_chars=int(defaults_raw.get("post_prefix_chars", 800)),
        max_candidates_per_round=int(defaults_raw.get("max_candidates_per_round", 15)),
        round_threshold_deltas=[int(d) for d in defaults_raw.get("round_threshold_deltas", [0, -1, -2])],
        image_width=int(defaults_raw.get("image_width", 1200)),
        image_height=int(defaults_raw.get("image_height", 628)),
        download_timeout_sec=int(defaults_raw.get("download_timeout_sec", 30)),
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        quality_guide=prompts_raw["quality_guide"],
        planner=prompts_raw["planner"],
        judge=prompts_raw["judge"],
        generation_suffix=prompts_raw["generation_suffix"],
    )

    pricing_raw = raw.get("pricing", {})
    pricing = PricingConfig(
        tokens={
            model: TokenPrice(input=float(p["input"]), output=float(p["output"]))
            for model, p in pricing_raw.get("tokens", {}).items()
        },
        web_search_call=float(pricing_raw.get("web_search_call", 0.0)),
        generated_image=float(pricing_raw.get("generated_image", 0.0)),
    )

    models: dict[str, ModelConfig] = {}
    available_models: set[str] = set()

    for role, model_raw in raw["models"].items():
        models[role] = ModelConfig(
            name=role,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw.get("max_tokens", 0)),
            base_url=model_raw.get("base_url"),
            size=model_raw.get("size"),
            quality=model_raw.get("quality"),
        )
        if _has_key(model_raw["api_key_env"]):
            available_models.add(role)
        else:
            logger.info(
                "Model role unavailable (no API key): %s; set %s in .env",
                role,
                model_raw["api_key_env"],
            )

    sources: dict[str, SourceConfig] = {}
    available_sources: set[str] = set()

    for source_name, source_raw in raw.get("sources", {}).items():
        sources[source_name] = SourceConfig(
            name=source_name,
            api_key_env=source_raw["api_key_env"],
            timeout_sec=int(source_raw["timeout_sec"]),
            per_page=int(source_raw["per_page"]),
        )
        if _has_key(source_raw["api_key_env"]):
            available_sources.add(source_name)
            logger.info("Image source available: %s", source_name)
        else:
            logger.info(
                "Image source skipped (no API key): %s; set %s in .env",
                source_name,
                source_raw["api_key_env"],
            )

    return AppConfig(
        defaults=defaults,
        models=models,
        sources=sources,
        pricing=pricing,
        prompts=prompts,
        available_models=available_models,
        available_sources=available_sources,
    )
