"""
File delivery service.

Maps product ids to the high-quality file behind them. The catalog is a JSON
object keyed by product id:

    {
      "sunset-bay": {"hq": "https://cdn.example.com/hq/sunset-bay.jpg", "low": "..."},
      "harbour":    {"hq": "media/hq/harbour.jpg"}
    }

Remote files (http/https) are handed out as redirects; local files are served
from under MEDIA_ROOT only. Locations are resolved *before* a download is
authorized so a missing file never costs the customer a copy.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)


class FileNotAvailableError(Exception):
    """Raised when no deliverable file exists for a product."""

    def __init__(self, product_id: str, reason: str):
        self.product_id = product_id
        self.reason = reason
        super().__init__(f"No file available for product {product_id!r}: {reason}")


@dataclass(frozen=True, slots=True)
class FileLocation:
    product_id: str
    file_name: str
    url: Optional[str] = None
    path: Optional[Path] = None

    @property
    def is_remote(self) -> bool:
        return self.url is not None


class ProductCatalog:
    def __init__(self, entries: Mapping[str, Any], media_root: str = ".") -> None:
        self._entries: Dict[str, Any] = dict(entries)
        self._media_root = Path(media_root).resolve()

    @classmethod
    def load(cls, catalog_path: str, media_root: str = ".") -> "ProductCatalog":
        path = Path(catalog_path)
        if not path.exists():
            logger.warning("Product catalog not found at %s; no files can be delivered", path)
            return cls({}, media_root=media_root)

        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"Product catalog {path} must be a JSON object keyed by product id")
        return cls(data, media_root=media_root)

    def _source(self, product_id: str) -> Optional[str]:
        entry = self._entries.get(product_id)
        if isinstance(entry, str):
            return entry
        if isinstance(entry, Mapping):
            return entry.get("hq") or entry.get("imageHQ") or entry.get("imageSrc") or entry.get("low")
        return None

    def resolve(self, product_id: str) -> FileLocation:
        """
        Resolve the deliverable file for a product.

        Raises:
            FileNotAvailableError: unknown product, empty entry, path outside
                MEDIA_ROOT, or a local file that does not exist.
        """

        source = self._source(product_id)
        if not source:
            raise FileNotAvailableError(product_id, "not in catalog")

        file_name = PurePosixPath(source.split("?", 1)[0]).name or f"{product_id}.jpg"

        if source.startswith(("http://", "https://")):
            return FileLocation(product_id=product_id, file_name=file_name, url=source)

        resolved = (self._media_root / source.lstrip("/")).resolve()
        if not resolved.is_relative_to(self._media_root):
            logger.warning(
                "Directory traversal attempt blocked",
                extra={"product_id": product_id, "source": source},
            )
            raise FileNotAvailableError(product_id, "path outside media root")
        if not resolved.is_file():
            raise FileNotAvailableError(product_id, "file missing")

        return FileLocation(product_id=product_id, file_name=file_name, path=resolved)


__all__ = ["FileLocation", "FileNotAvailableError", "ProductCatalog"]
