"""Pure dataclasses for the image-finder pipeline. No logic, no deps."""

from dataclasses import dataclass, field
from enum import Enum


class SourceKind(str, Enum):
    STOCK_A = "stock-a"        # Pexels
    STOCK_B = "stock-b"        # Unsplash
    WEB_SEARCH = "web-search"  # SerpAPI Google Images
    GENERATIVE = "generative"  # OpenAI Images


@dataclass(frozen=True)
class QueryVariant:
    stock_query: str | None = None
    web_search_query: str | None = None


@dataclass(frozen=True)
class Intent:
    topic: str
    query_variants: tuple[QueryVariant, ...]  # most specific first
    main_entity: str | None
    forbidden_entities: frozenset[str]
    accept_threshold: int
    fallback_prompt: str
    visual_style_hint: str | None = None
    visual_theme: str = ""


@dataclass(frozen=True)
class Candidate:
    url: str
    source_kind: SourceKind
    attribution: str


@dataclass(frozen=True)
class ScoredCandidate:
    candidate: Candidate
    score: int
    rationale: str
    violates_brand_safety: bool = False

    @property
    def url(self) -> str:
        return self.candidate.url

    @property
    def source_kind(self) -> SourceKind:
        return self.candidate.source_kind

    @property
    def attribution(self) -> str:
        return self.candidate.attribution


@dataclass
class Completion:
    text: str
    input_units: int
    output_units: int


@dataclass
class RoundResult:
    index: int                 # 1-indexed
    threshold: int
    query_variant: QueryVariant
    candidates_found: int = 0
    scored: list[ScoredCandidate] = field(default_factory=list)
    failures: int = 0          # judge calls that failed
    winner: ScoredCandidate | None = None


@dataclass
class WaterfallResult:
    intent: Intent
    winner: ScoredCandidate
    rounds: list[RoundResult]
    generated: bool = False
