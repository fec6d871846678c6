"""Per-request cost ledger for metered API calls."""

import logging
from dataclasses import dataclass

from config.config_loader import PricingConfig

logger = logging.getLogger(__name__)

KEYWORD_EXTRACTION = "keyword_extraction"
VISION_SCORING = "vision_scoring"
WEB_SEARCH = "web_search"
GENERATIVE_IMAGE = "generative_image"

OPERATIONS = (KEYWORD_EXTRACTION, VISION_SCORING, WEB_SEARCH, GENERATIVE_IMAGE)

_PER_MILLION = 1_000_000


@dataclass
class LedgerEntry:
    calls: int = 0
    input_units: int = 0
    output_units: int = 0
    usd: float = 0.0
    model: str | None = None


class CostLedger:
    """Accumulates metered cost for one request.

    Created fresh per request and never shared, so no locking. Entries only
    grow; ``finalize`` freezes the ledger and returns the grand total.
    """

    def __init__(self, pricing: PricingConfig) -> None:
        self._pricing = pricing
        self._entries: dict[str, LedgerEntry] = {op: LedgerEntry() for op in OPERATIONS}
        self._total_usd: float | None = None

    def _entry_for(self, operation: str) -> LedgerEntry:
        if self._total_usd is not None:
            raise RuntimeError("Cost ledger already finalized")
        if operation not in self._entries:
            raise KeyError(f"Unknown metered operation: {operation}")
        return self._entries[operation]

    def record_tokens(self, operation: str, model: str, input_units: int, output_units: int) -> float:
        """Record one token-metered call. Returns the USD added."""
        entry = self._entry_for(operation)
        price = self._pricing.tokens.get(model)
        if price is None:
            logger.warning("No token pricing for model %s; recording %s at $0", model, operation)
            cost = 0.0
        else:
            cost = (input_units * price.input + output_units * price.output) / _PER_MILLION
        entry.calls += 1
        entry.input_units += input_units
        entry.output_units += output_units
        entry.usd += cost
        entry.model = model
        return cost

    def record_call(self, operation: str, model: str | None = None) -> float:
        """Record one per-call metered operation (web search, generated image)."""
        entry = self._entry_for(operation)
        if operation == WEB_SEARCH:
            cost = self._pricing.web_search_call
        elif operation == GENERATIVE_IMAGE:
            cost = self._pricing.generated_image
        else:
            raise ValueError(f"{operation} is metered by tokens, not per call")
        entry.calls += 1
        entry.usd += cost
        if model:
            entry.model = model
        return cost

    def entry(self, operation: str) -> LedgerEntry:
        return self._entries[operation]

    def finalize(self) -> float:
        """Freeze the ledger and return the grand total in USD."""
        if self._total_usd is None:
            self._total_usd = sum(e.usd for e in self._entries.values())
        return self._total_usd

    @property
    def finalized(self) -> bool:
        return self._total_usd is not None

    @property
    def total_usd(self) -> float:
        if self._total_usd is not None:
            return self._total_usd
        return sum(e.usd for e in self._entries.values())

    def as_dict(self) -> dict:
        """Structured cost breakdown: one entry per operation plus totals."""
        total = self.total_usd
        breakdown: dict = {}
        for op, e in self._entries.items():
            breakdown[op] = {
                "model": e.model,
                "calls": e.calls,
                "input_tokens": e.input_units,
                "output_tokens": e.output_units,
                "usd": round(e.usd, 6),
            }
        breakdown["total_usd"] = round(total, 6)
        breakdown["total_display"] = f"${total:.4f}"
        return breakdown
