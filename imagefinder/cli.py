"""Click CLI: config loading, pipeline wiring, single post or inbox batch, output."""

import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler

from config.config_loader import AppConfig, load_config
from imagefinder.healthcheck import run_source_checks
from imagefinder.inbox import archive_file, ensure_dirs, read_post, scan_inbox
from imagefinder.models import RoundResult
from imagefinder.output import print_cost_breakdown, print_intent, print_result, print_round_summary, save_to_file
from imagefinder.pipeline import (
    SEARCH_CLASSES,
    ConfigurationError,
    ImageFinder,
    build_failure_response,
    build_response,
    build_searches,
)
from imagefinder.planner import UpstreamError
from imagefinder.providers.base import ProviderError
from imagefinder.waterfall import AllImageSourcesFailed

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

# Errors that fail a single request. Anything else is a bug and propagates.
REQUEST_ERRORS = (UpstreamError, AllImageSourcesFailed, ProviderError)

# Probing these sources costs money, so the health check skips them.
_METERED_SOURCES = {"serpapi"}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    # SDK request logs drown out round progress
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _check_sources(config: AppConfig) -> None:
    """Probe unmetered sources and print results. Exits if the user declines to continue."""
    searches = {n: s for n, s in build_searches(config).items() if n not in _METERED_SOURCES}
    skipped = sorted(n for n in config.available_sources if n in _METERED_SOURCES)
    missing = sorted(n for n in SEARCH_CLASSES if n not in config.available_sources)

    console.print("\n[bold]Checking image sources...[/bold]")
    results: dict[str, tuple[bool, str]] = asyncio.run(run_source_checks(searches))

    failed_names: list[str] = []
    for name in sorted(results):
        ok, err = results[name]
        if ok:
            console.print(f"  [green]OK  [/green] {name}")
        else:
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            console.print(f"  [red]FAIL[/red] {name}: {short_err}")
            failed_names.append(name)
    for name in skipped:
        console.print(f"  [dim]SKIP[/dim] {name} (metered, not probed)")
    for name in missing:
        console.print(f"  [dim]OFF [/dim] {name} (no API key)")

    if failed_names and not click.confirm("Continue anyway? Failed sources will yield nothing.", default=True):
        sys.exit(0)
    console.print()


async def _run_single(
    finder: ImageFinder,
    post_text: str,
    output_dir: Path,
    download: bool,
    min_score: int | None = None,
    slug_override: str | None = None,
) -> dict:
    """Find an image for one post, print and save the result. Returns the response document."""
    preview = post_text[:80] + ("..." if len(post_text) > 80 else "")
    console.print(f"\n[bold cyan]Post Image Finder[/bold cyan]: [italic]{preview}[/italic]\n")

    def on_round_complete(result: RoundResult) -> None:
        print_round_summary(result)

    try:
        outcome = await finder.find(
            post_text,
            min_score=min_score,
            download_dir=output_dir if download else None,
            on_round_complete=on_round_complete,
        )
    except REQUEST_ERRORS as exc:
        logger.error("Request failed: %s", exc)
        response = build_failure_response(exc)
        saved = save_to_file(response, output_dir, slug_override=slug_override)
        console.print(f"[bold red]Error:[/bold red] {exc}")
        console.print(f"[dim]Saved to: {saved}[/dim]")
        return response

    print_intent(outcome.result.intent)
    response = build_response(outcome)
    print_result(response)
    print_cost_breakdown(outcome.ledger)

    saved = save_to_file(response, output_dir, slug_override=slug_override)
    console.print(f"\n[dim]Finished in {outcome.duration_sec:.1f}s. Saved to: {saved}[/dim]")
    return response


async def _run_inbox(
    finder: ImageFinder,
    inbox_dir: Path,
    archive_dir: Path,
    output_dir: Path,
    download_cli: bool | None,
    min_score_cli: int | None,
) -> None:
    """Process all .md files in the inbox folder.

    Precedence for per-file settings: CLI flag > frontmatter > default.
    """
    ensure_dirs(inbox_dir, archive_dir)
    files = scan_inbox(inbox_dir)

    if not files:
        click.echo("No files in inbox.")
        return

    for file_path in files:
        post = read_post(file_path)
        if not post.text:
            logger.warning("Skipping empty post: %s", file_path.name)
            archive_file(file_path, archive_dir, failed=True)
            continue

        download = download_cli if download_cli is not None else (post.download if post.download is not None else True)
        min_score = min_score_cli if min_score_cli is not None else post.min_score

        response = await _run_single(
            finder,
            post.text,
            output_dir=output_dir,
            download=download,
            min_score=min_score,
            slug_override=file_path.stem,
        )
        archived = archive_file(file_path, archive_dir, failed=not response["success"])
        click.echo(f"Processed: {file_path.name} (archived: {archived.name})")


@click.command()
@click.argument("post", required=False)
@click.option("--file", "post_file", type=click.Path(exists=True), help="Read the post from a text or .md file")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--min-score", type=click.IntRange(1, 10), default=None,
              help="Override the planner's acceptance threshold for this run")
@click.option("--no-download", is_flag=True, default=False,
              help="Only report the chosen image URL, do not download and resize it")
@click.option("--inbox", "use_inbox", is_flag=True, default=False,
              help="Process all .md files in the inbox folder")
@click.option("--inbox-dir", "inbox_dir_override", default=None,
              help="Override inbox folder path (default: from config)")
@click.option("--check-sources", is_flag=True, default=False,
              help="Probe the stock photo APIs before running")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def main(
    post: str | None,
    post_file: str | None,
    output_path: str | None,
    min_score: int | None,
    no_download: bool,
    use_inbox: bool,
    inbox_dir_override: str | None,
    check_sources: bool,
    verbose: bool,
) -> None:
    """Post Image Finder -- pick or generate a header image for a post.

    \b
    Examples:
      python -m imagefinder.cli "We just shipped our new GPU cluster..."
      python -m imagefinder.cli --file post.md --no-download
      python -m imagefinder.cli --inbox --min-score 8
    """
    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    try:
        finder = ImageFinder.from_config(config)
    except ConfigurationError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    if check_sources:
        _check_sources(config)

    output_dir = Path(output_path) if output_path else config.defaults.output_dir

    if use_inbox:
        inbox_dir = Path(inbox_dir_override) if inbox_dir_override else config.defaults.inbox_dir
        asyncio.run(
            _run_inbox(
                finder,
                inbox_dir=inbox_dir,
                archive_dir=config.defaults.archive_dir,
                output_dir=output_dir,
                download_cli=False if no_download else None,
                min_score_cli=min_score,
            )
        )
        return

    if post_file:
        post_text = read_post(Path(post_file)).text
    elif post:
        post_text = post
    else:
        console.print("[bold red]Error:[/bold red] Provide a POST argument, --file, or --inbox.")
        sys.exit(1)

    if not post_text.strip():
        console.print("[bold red]Error:[/bold red] Post text is empty.")
        sys.exit(1)

    response = asyncio.run(
        _run_single(
            finder,
            post_text,
            output_dir=output_dir,
            download=not no_download,
            min_score=min_score,
        )
    )
    if not response["success"]:
        sys.exit(1)


if __name__ == "__main__":
    main()
