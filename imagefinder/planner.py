"""Query planner: turn post text into a search Intent with one model call."""

import logging

from config.config_loader import PromptsConfig
from imagefinder.costs import KEYWORD_EXTRACTION, CostLedger
from imagefinder.models import Intent, QueryVariant
from imagefinder.parsing import UpstreamParseError, parse_json_object
from imagefinder.providers.base import LanguageModel, ProviderError

logger = logging.getLogger(__name__)

# Thresholds when the model omits min_score
ENTITY_THRESHOLD = 7
GENERAL_THRESHOLD = 6

DEFAULT_PREFIX_CHARS = 800
DEFAULT_ROUNDS = 3

_NULL_STRINGS = {"", "null", "none", "n/a"}


class UpstreamError(RuntimeError):
    """Raised when planning fails. Fatal for the request."""


def _clean(value) -> str | None:
    if value is None or not isinstance(value, str):
        return None
    value = value.strip()
    if value.lower() in _NULL_STRINGS:
        return None
    return value


def _clean_list(value) -> list[str | None]:
    if not isinstance(value, list):
        return []
    return [_clean(v) for v in value]


def _threshold(raw, main_entity: str | None) -> int:
    default = ENTITY_THRESHOLD if main_entity else GENERAL_THRESHOLD
    if raw is None or isinstance(raw, bool):
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-numeric min_score %r, using %d", raw, default)
        return default
    return max(1, min(10, value))


class QueryPlanner:
    def __init__(
        self,
        model: LanguageModel,
        prompts: PromptsConfig,
        prefix_chars: int = DEFAULT_PREFIX_CHARS,
        max_output_units: int = 500,
        rounds: int = DEFAULT_ROUNDS,
    ) -> None:
        self._model = model
        self._prompts = prompts
        self._prefix_chars = prefix_chars
        self._max_output_units = max_output_units
        self._rounds = rounds

    def build_prompt(self, post_text: str) -> str:
        return self._prompts.planner.format(post=post_text[: self._prefix_chars])

    async def plan(self, post_text: str, ledger: CostLedger) -> Intent:
        """Extract topic, queries, entity rules and fallback prompt from a post.

        Raises:
            UpstreamError: If the model call fails or the reply has the wrong shape.
        """
        try:
            completion = await self._model.complete(
                self._prompts.quality_guide,
                self.build_prompt(post_text),
                self._max_output_units,
            )
        except ProviderError as exc:
            raise UpstreamError(f"Keyword extraction failed: {exc}") from exc

        ledger.record_tokens(
            KEYWORD_EXTRACTION,
            self._model.model_string(),
            completion.input_units,
            completion.output_units,
        )

        try:
            return self._to_intent(parse_json_object(completion.text))
        except UpstreamParseError as exc:
            raise UpstreamError(f"Keyword extraction returned unusable output: {exc}") from exc

    def _to_intent(self, data: dict) -> Intent:
        stock_queries = _clean_list(data.get("search_queries"))
        if not any(stock_queries):
            raise UpstreamParseError("search_queries must be a non-empty list of strings")
        web_queries = _clean_list(data.get("web_queries"))

        variants: list[QueryVariant] = []
        for i in range(self._rounds):
            stock = stock_queries[i] if i < len(stock_queries) else None
            web = web_queries[i] if i < len(web_queries) else None
            if not web_queries:
                web = stock
            variants.append(QueryVariant(stock_query=stock, web_search_query=web))

        main_entity = _clean(data.get("main_entity"))
        topic = _clean(data.get("topic")) or "header_image"
        visual_theme = _clean(data.get("visual_theme")) or ""
        fallback_prompt = _clean(data.get("dalle_prompt")) or visual_theme or topic.replace("_", " ")
        forbidden = frozenset(
            b for b in _clean_list(data.get("forbidden_brands")) if b
        )

        intent = Intent(
            topic=topic,
            query_variants=tuple(variants),
            main_entity=main_entity,
            forbidden_entities=forbidden,
            accept_threshold=_threshold(data.get("min_score"), main_entity),
            fallback_prompt=fallback_prompt,
            visual_style_hint=_clean(data.get("style_hint")),
            visual_theme=visual_theme,
        )
        logger.info(
            "topic=%r entity=%r threshold=%d/10 forbidden=%s",
            intent.topic,
            intent.main_entity,
            intent.accept_threshold,
            sorted(intent.forbidden_entities),
        )
        logger.debug("query variants: %s", intent.query_variants)
        return intent
