# animetracker/models.py
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import time

from animetracker.ledger import EpisodeLedger
from animetracker.progress import aggregate
from animetracker.seasons import parse_total

UNKNOWN_EPISODES = "Unknown"
KINDS = ("anime", "manga")

def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def epoch_millis() -> int:
    return int(time.time() * 1000)

# keys owned by TitleRecord; everything else in a persisted record is carried in `extra`
TITLE_KEYS = (
    "id", "title", "kind", "catalogId", "totalEpisodes", "seasons", "seasonEpisodes",
    "currentSeason", "watchedEpisodes", "isCompleted", "customSeason", "customEpisodes",
    "order", "notes", "createdAt", "updatedAt",
)

# older records and catalog payloads use these names for current keys
LEGACY_KEYS = {"type": "kind", "mal_id": "catalogId", "episodes": "totalEpisodes"}

def canonical_keys(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Rename legacy keys to their current names. A current key that is present and not None wins."""
    out = {k: v for k, v in raw.items() if k not in LEGACY_KEYS}
    for old, new in LEGACY_KEYS.items():
        if old in raw and raw.get(new) is None:
            out[new] = raw[old]
    return out

def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default

def _normalize_kind(raw: Any) -> str:
    kind = str(raw or "anime").strip().lower()
    return kind if kind in KINDS else "anime"

@dataclass
class TitleRecord:
    title: str
    kind: str = "anime"
    id: Optional[str] = None
    catalog_id: Optional[Any] = None
    total_episodes: Optional[int] = None  # None -> unknown / ongoing
    seasons: List[str] = field(default_factory=list)
    ledger: EpisodeLedger = field(default_factory=EpisodeLedger)
    current_season: Optional[str] = None
    watched_episodes: int = 0
    is_completed: bool = False
    custom_season: str = ""
    custom_episodes: str = ""
    order: int = 0
    notes: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_known_length(self) -> bool:
        return self.total_episodes is not None

    def refresh_progress(self) -> int:
        """Recompute watched_episodes / is_completed from the ledger. Only mutation path for both."""
        self.watched_episodes, self.is_completed = aggregate(
            self.ledger, self.total_episodes, current_completed=self.is_completed)
        return self.watched_episodes

    def touch(self) -> None:
        self.updated_at = now_iso()

    def to_dict(self) -> Dict[str, Any]:
        out = dict(self.extra)
        out.update({
            "id": self.id,
            "title": self.title,
            "kind": self.kind,
            "totalEpisodes": self.total_episodes if self.has_known_length else UNKNOWN_EPISODES,
            "seasons": list(self.seasons),
            "seasonEpisodes": self.ledger.to_dict(),
            "currentSeason": self.current_season,
            "watchedEpisodes": self.watched_episodes,
            "isCompleted": self.is_completed,
            "customSeason": self.custom_season,
            "customEpisodes": self.custom_episodes,
            "order": self.order,
            "notes": self.notes,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        })
        if self.catalog_id is not None:
            out["catalogId"] = self.catalog_id
        return out

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "TitleRecord":
        """
        Build a record from its persisted (or add-request) form.
        Legacy keys are read through `canonical_keys`; unknown keys are kept
        verbatim in `extra`.
        """
        raw = canonical_keys(raw)
        seasons = raw.get("seasons")
        return cls(
            title=str(raw.get("title") or "").strip(),
            kind=_normalize_kind(raw.get("kind")),
            id=raw.get("id"),
            catalog_id=raw.get("catalogId"),
            total_episodes=parse_total(raw.get("totalEpisodes")),
            seasons=[str(s) for s in seasons] if isinstance(seasons, list) else [],
            ledger=EpisodeLedger.from_dict(raw.get("seasonEpisodes")),
            current_season=raw.get("currentSeason"),
            watched_episodes=_as_int(raw.get("watchedEpisodes")),
            is_completed=bool(raw.get("isCompleted", False)),
            custom_season=raw.get("customSeason") or "",
            custom_episodes=raw.get("customEpisodes") or "",
            order=_as_int(raw.get("order")),
            notes=raw.get("notes") or "",
            created_at=raw.get("createdAt"),
            updated_at=raw.get("updatedAt"),
            extra={k: v for k, v in raw.items() if k not in TITLE_KEYS},
        )

@dataclass
class Review:
    id: str
    rating: int  # 1-5
    text: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        out = dict(self.extra)
        out.update({"id": self.id, "rating": self.rating, "text": self.text,
                    "createdAt": self.created_at, "updatedAt": self.updated_at})
        return out

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Review":
        return cls(
            id=raw["id"],
            rating=raw["rating"],
            text=raw["text"],
            created_at=raw.get("createdAt"),
            updated_at=raw.get("updatedAt"),
            extra={k: v for k, v in raw.items() if k not in ("id", "rating", "text", "createdAt", "updatedAt")},
        )
