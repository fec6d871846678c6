"""Inbox folder of post drafts: scanning, frontmatter parsing, archiving."""

import logging
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import frontmatter

logger = logging.getLogger(__name__)


@dataclass
class InboxPost:
    path: Path
    text: str
    min_score: int | None = None
    download: bool | None = None


def ensure_dirs(inbox_dir: Path, archive_dir: Path) -> None:
    """Create inbox and archive directories if they don't exist."""
    inbox_dir.mkdir(parents=True, exist_ok=True)
    archive_dir.mkdir(parents=True, exist_ok=True)


def scan_inbox(inbox_dir: Path) -> list[Path]:
    """Return all .md files in inbox_dir, sorted by mtime ascending (oldest first)."""
    files = list(inbox_dir.glob("*.md"))
    return sorted(files, key=lambda p: p.stat().st_mtime)


def read_post(file_path: Path) -> InboxPost:
    """Parse a post draft with optional YAML frontmatter.

    Recognised frontmatter keys: ``min_score`` (int 1-10, overrides the
    planner's threshold) and ``download`` (bool). Unknown keys are ignored.
    """
    post = frontmatter.load(str(file_path))
    meta = dict(post.metadata)

    min_score: int | None = None
    if "min_score" in meta:
        try:
            min_score = int(meta["min_score"])
        except (TypeError, ValueError):
            logger.warning("%s: ignoring invalid min_score %r", file_path.name, meta["min_score"])

    download = bool(meta["download"]) if "download" in meta else None

    return InboxPost(path=file_path, text=post.content.strip(), min_score=min_score, download=download)


def archive_file(file_path: Path, archive_dir: Path, *, failed: bool = False) -> Path:
    """Move file to archive_dir with a timestamp prefix.

    Args:
        file_path: Source file to archive.
        archive_dir: Destination directory.
        failed: If True, prefix filename with "FAILED_".

    Returns:
        Path to the archived file.
    """
    timestamp = datetime.now().strftime("%Y-%m-%dT%H%M")
    prefix = "FAILED_" if failed else ""
    dest = archive_dir / f"{prefix}{timestamp}_{file_path.name}"
    shutil.move(str(file_path), str(dest))
    return dest
