# animetracker/catalog.py
import json
import logging
from typing import Any, Dict, List, Optional

from animetracker.models import KINDS
from animetracker.seasons import parse_total, partition

logger = logging.getLogger(__name__)


class CatalogError(Exception):
    """Raised when the catalog cannot answer a lookup."""
    pass


class CatalogService:
    """
    What the web layer needs from a catalog. Remote fetching lives outside this
    package; `StaticCatalog` serves entries from memory or a JSON file.
    """
    def search(self, query: str, kind: str = "anime") -> List[Dict[str, Any]]:
        raise NotImplementedError

    def detail(self, catalog_id: Any, kind: str = "anime") -> Dict[str, Any]:
        raise NotImplementedError


class StaticCatalog(CatalogService):
    def __init__(self, entries: Optional[List[Dict[str, Any]]] = None):
        self.entries = list(entries or [])

    @classmethod
    def from_file(cls, path: str) -> "StaticCatalog":
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise CatalogError(f"cannot read catalog file {path}: {e}") from e
        if isinstance(data, dict):
            data = data.get("data", [])
        if not isinstance(data, list):
            raise CatalogError(f"catalog file {path} must hold a list of entries")
        logger.info("Loaded %d catalog entries from %s", len(data), path)
        return cls(data)

    def _of_kind(self, kind: str) -> List[Dict[str, Any]]:
        return [e for e in self.entries if (e.get("type") or e.get("kind") or "anime") == kind]

    def search(self, query: str, kind: str = "anime") -> List[Dict[str, Any]]:
        q = (query or "").strip().lower()
        if not q:
            return []
        return [e for e in self._of_kind(kind) if q in str(e.get("title", "")).lower()]

    def detail(self, catalog_id: Any, kind: str = "anime") -> Dict[str, Any]:
        for e in self._of_kind(kind):
            if str(e.get("mal_id", e.get("catalogId"))) == str(catalog_id):
                return dict(e)
        raise CatalogError(f"{kind} {catalog_id} not in catalog")


def title_from_catalog(detail: Dict[str, Any], kind: str = "anime", with_layout: bool = True) -> Dict[str, Any]:
    """
    Build a watchlist add-request from a catalog detail record.

    Known-length titles are partitioned by the watchlist itself, which keeps
    existing progress on re-add. Unknown-length titles get the placeholder
    season here when `with_layout` is set, since the watchlist does not lay
    those out.
    """
    if kind not in KINDS:
        kind = "anime"
    total = parse_total(detail.get("episodes") if kind == "anime" else detail.get("chapters", detail.get("episodes")))
    image = detail.get("image") or ((detail.get("images") or {}).get("jpg") or {}).get("image_url") or ""
    item = {
        k: v for k, v in detail.items()
        if k not in ("images", "mal_id", "type", "kind", "episodes", "chapters")
    }
    item.update({
        "title": detail.get("title"),
        "image": image,
        "kind": kind,
        "catalogId": detail.get("mal_id", detail.get("catalogId")),
        "totalEpisodes": total if total is not None else "Unknown",
        "score": detail.get("score") if detail.get("score") is not None else "N/A",
        "synopsis": detail.get("synopsis") or "No synopsis available.",
    })
    if total is None and with_layout:
        seasons, ledger = partition(None)
        item["seasons"] = seasons
        item["seasonEpisodes"] = ledger.to_dict()
    return item
