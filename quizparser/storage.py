"""
Filesystem Asset Store
======================
Reference asset store that writes question images under a base directory.

Directory Layout:
    <base_dir>/
    └── quiz-{quiz_id}/
        └── question-{index}.png
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from .errors import AssetUploadError

logger = logging.getLogger(__name__)

_DEFAULT_ASSET_DIR = Path.cwd() / "uploads" / "quiz-images"


def get_asset_dir() -> Path:
    """Return the configured asset directory."""
    return Path(os.environ.get("QUIZPARSER_ASSET_DIR", _DEFAULT_ASSET_DIR))


class LocalAssetStore:
    """
    Stores blobs as files and returns their URL.

    Args:
        base_dir: Root directory for assets.
        base_url: Public URL prefix. Defaults to file:// URIs.
    """

    def __init__(
        self,
        base_dir: Optional[str] = None,
        base_url: Optional[str] = None,
    ):
        self.base_dir = Path(base_dir) if base_dir else get_asset_dir()
        self.base_url = base_url.rstrip("/") if base_url else None
        self.base_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Asset storage initialized: {self.base_dir}")

    def put(self, name: str, data: bytes, content_type: str = "image/png") -> str:
        """Write a blob; an existing file with the same name is replaced."""
        dest = self._resolve(name)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            dest.write_bytes(data)
        except OSError as e:
            raise AssetUploadError(f"Failed to store {name}: {e}") from e

        logger.debug(f"Stored asset {name} ({len(data)} bytes, {content_type})")
        if self.base_url:
            return f"{self.base_url}/{dest.relative_to(self.base_dir).as_posix()}"
        return dest.resolve().as_uri()

    def path_for(self, name: str) -> Path:
        return self._resolve(name)

    def _resolve(self, name: str) -> Path:
        parts = [_sanitize_name(p) for p in Path(name).parts if p not in ("", ".", "..", "/")]
        if not parts:
            raise AssetUploadError(f"Invalid asset name: {name!r}")
        return self.base_dir.joinpath(*parts)


def _sanitize_name(name: str) -> str:
    """Sanitize a path component for filesystem use."""
    return "".join(
        c if c.isalnum() or c in "-_. " else "_"
        for c in name
    ).strip().replace(" ", "_")[:100]
