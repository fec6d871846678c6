"""Rich console output and JSON file save for image-finder results."""

import json
import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from imagefinder.costs import OPERATIONS, CostLedger
from imagefinder.models import Intent, RoundResult

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    value = re.sub(r"[^\w\s-]", "", text.lower())
    value = re.sub(r"[\s_-]+", "_", value).strip("_")
    return value[:max_len] or "image"


def print_intent(intent: Intent) -> None:
    console.print(Rule("[bold cyan]Search Plan[/bold cyan]"))
    lines = [
        f"Topic: {intent.topic}",
        f"Main entity: {intent.main_entity or '-'}",
        f"Threshold: {intent.accept_threshold}/10",
        f"Forbidden: {', '.join(sorted(intent.forbidden_entities)) or '-'}",
    ]
    for i, variant in enumerate(intent.query_variants, start=1):
        lines.append(f"Round {i}: stock={variant.stock_query!r} web={variant.web_search_query!r}")
    console.print(Text("\n".join(lines), style="dim"))


def print_round_summary(result: RoundResult) -> None:
    """Print a brief summary of one retrieval round."""
    if result.winner:
        status = f"[green]winner {result.winner.score}/10[/green]"
    else:
        status = "[yellow]no winner[/yellow]"
    console.print(
        f"Round {result.index} (threshold {result.threshold}): "
        f"{result.candidates_found} candidates, {len(result.scored)} scored, "
        f"{result.failures} failed -> {status}"
    )


def print_result(response: dict) -> None:
    """Print the chosen image and its provenance."""
    console.print(Rule("[bold green]Chosen Image[/bold green]"))
    score = "generated" if response["score"] is None else f"{response['score']}/10"
    body = (
        f"{response['image_url']}\n\n"
        f"Source: {response['source']} ({response['attribution']})\n"
        f"Score: {score}"
        + (f"\nReason: {response['score_reason']}" if response.get("score_reason") else "")
        + (f"\nSaved: {response['local_path']}" if response.get("local_path") else "")
    )
    console.print(Panel(body, title=f"[bold]{response['topic']}[/bold]", border_style="green"))


def print_cost_breakdown(ledger: CostLedger) -> None:
    table = Table(title="Cost breakdown", show_footer=True)
    table.add_column("Operation", footer="TOTAL")
    table.add_column("Model")
    table.add_column("Calls", justify="right")
    table.add_column("Tokens in/out", justify="right")
    table.add_column("USD", justify="right", footer=f"${ledger.total_usd:.6f}")
    for op in OPERATIONS:
        entry = ledger.entry(op)
        if not entry.calls:
            continue
        tokens = f"{entry.input_units}/{entry.output_units}" if entry.input_units or entry.output_units else "-"
        table.add_row(op, entry.model or "-", str(entry.calls), tokens, f"${entry.usd:.6f}")
    console.print(table)


def save_to_file(response: dict, output_dir: Path, slug_override: str | None = None) -> Path:
    """Save the response document as JSON.

    Args:
        response: Success or failure document from the pipeline.
        output_dir: Directory to save the file in.
        slug_override: If provided, use this as the filename stem instead of
            deriving one from the topic. Useful for inbox mode.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    stem = slug_override if slug_override is not None else slug(response.get("topic") or "failed")
    filepath = output_dir / f"{timestamp}_{stem}.json"

    document = dict(response)
    document["saved_at"] = datetime.now().isoformat(timespec="seconds")
    filepath.write_text(json.dumps(document, indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info("Result saved to: %s", filepath)
    return filepath
