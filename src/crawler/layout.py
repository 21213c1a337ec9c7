"""
Output layout for crawl artifacts.

Artifacts are bucketed by hour:

    crawl-output/<YYYYMMDDHH>/{crawl,raw,rendered,links,text}-<url_hash>.{png,html,html,json,txt}

Re-crawling a URL within the same hour overwrites the same files; crawls in
different hours land in different directories.
"""

from datetime import UTC, datetime
from enum import Enum
from pathlib import Path


class ArtifactKind(str, Enum):
    """Artifact kinds written for one crawl."""

    SCREENSHOT = "screenshot"
    RAW_HTML = "raw_html"
    RENDERED_HTML = "rendered_html"
    LINKS = "links"
    TEXT = "text"


_ARTIFACT_NAMES: dict[ArtifactKind, tuple[str, str]] = {
    ArtifactKind.SCREENSHOT: ("crawl", "png"),
    ArtifactKind.RAW_HTML: ("raw", "html"),
    ArtifactKind.RENDERED_HTML: ("rendered", "html"),
    ArtifactKind.LINKS: ("links", "json"),
    ArtifactKind.TEXT: ("text", "txt"),
}


class OutputLayout:
    """Deterministic directory and file naming under an output root."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    @staticmethod
    def hour_bucket(now: datetime) -> str:
        """Return the 10-char hour token (UTC) for a timestamp, e.g. ``2024031509``."""
        if now.tzinfo is not None:
            now = now.astimezone(UTC)
        return now.strftime("%Y%m%d%H")

    def directory_for(self, now: datetime) -> Path:
        return self.root / self.hour_bucket(now)

    @staticmethod
    def artifact_path(directory: str | Path, kind: ArtifactKind, url_hash: str) -> Path:
        prefix, extension = _ARTIFACT_NAMES[kind]
        return Path(directory) / f"{prefix}-{url_hash}.{extension}"

    def artifact_paths(self, directory: str | Path, url_hash: str) -> dict[ArtifactKind, Path]:
        """Return the paths of all five artifacts for one crawl."""
        return {kind: self.artifact_path(directory, kind, url_hash) for kind in ArtifactKind}
