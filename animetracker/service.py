# animetracker/service.py
from typing import Any, Dict, List, Optional, Tuple
import logging

from animetracker.locking import SerialLock
from animetracker.models import TitleRecord, canonical_keys, epoch_millis, now_iso
from animetracker.progress import sort_for_display
from animetracker.repo import MalformedDataError, PersistenceError
from animetracker.seasons import partition, verify_ledger

logger = logging.getLogger(__name__)

# Exceptions
class ValidationError(Exception):
    """Raised when input or business validation fails."""
    pass

class NotFoundError(Exception):
    """Raised when an entity is not found."""
    pass

def _require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} required")
    return value

def _optional_text(value: Any, field: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be text")
    return value

def _require_episode_number(value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError("episode number must be a positive integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError("episode number must be a positive integer")
    if number < 1:
        raise ValidationError("episode number must be a positive integer")
    return number

class WatchlistService:
    """
    Watchlist store: the only mutation path for title records.

    Every mutating operation holds the store lock for a full read-modify-write of
    the persisted watchlist document, so commands are applied one at a time in
    arrival order. Validation and not-found failures are raised before anything
    is written.
    """

    def __init__(self, repo, lock: Optional[SerialLock] = None):
        self.repo = repo
        self.lock = lock or SerialLock()
        logger.debug("WatchlistService initialized with repo %s", type(repo).__name__)

    # ---- persistence helpers ----
    def _load(self) -> List[TitleRecord]:
        try:
            raw = self.repo.load_watchlist()
        except (MalformedDataError, PersistenceError) as e:
            logger.warning("Watchlist unreadable, starting from empty: %s", e)
            return []
        records = []
        for item in raw:
            if not isinstance(item, dict) or not str(item.get("title") or "").strip():
                logger.warning("Skipping malformed watchlist entry: %r", item)
                continue
            records.append(TitleRecord.from_dict(item))
        return records

    def _save(self, records: List[TitleRecord]) -> None:
        self.repo.save_watchlist([r.to_dict() for r in records])

    @staticmethod
    def _index_of(records: List[TitleRecord], title: str) -> int:
        for i, r in enumerate(records):
            if r.title == title:
                return i
        return -1

    def _find(self, records: List[TitleRecord], title: str) -> TitleRecord:
        idx = self._index_of(records, title)
        if idx == -1:
            logger.debug("title %r not found", title)
            raise NotFoundError("title not found")
        return records[idx]

    # ---- queries ----
    def list(self) -> List[TitleRecord]:
        """Return all title records in stored order."""
        return self._load()

    def list_for_display(self, kind: Optional[str] = None) -> List[TitleRecord]:
        return sort_for_display(self._load(), kind=kind)

    def get(self, title: str) -> TitleRecord:
        return self._find(self._load(), title)

    # ---- add / merge ----
    def _normalize_layout(self, record: TitleRecord, ledger_supplied: bool) -> None:
        """Fill in seasons / ledger / current season. Only known-length titles are partitioned."""
        if not record.has_known_length:
            if not record.seasons:
                record.seasons = record.ledger.seasons()
        elif not ledger_supplied:
            problems = verify_ledger(record.ledger, record.total_episodes)
            if record.ledger.is_empty() or problems:
                # episode count discovered or changed: rebuild, keeping watched flags that still fit
                watched = {n for n in record.ledger.watched_numbers() if n <= record.total_episodes}
                seasons, ledger = partition(record.total_episodes)
                for label in seasons:
                    for ep in ledger.episodes(label):
                        if ep.number in watched:
                            ledger.set_watched(label, ep.number, True)
                record.seasons, record.ledger = seasons, ledger
        else:
            problems = verify_ledger(record.ledger, record.total_episodes)
            if problems:
                logger.warning("Ledger for %r does not match %s episodes: %s",
                               record.title, record.total_episodes, "; ".join(problems))
        if record.has_known_length and not record.seasons:
            record.seasons = record.ledger.seasons() or partition(record.total_episodes)[0]
        if record.seasons and record.current_season not in record.seasons:
            record.current_season = record.seasons[0]

    def add(self, item: Dict[str, Any]) -> Tuple[TitleRecord, bool]:
        """
        Insert a title, or merge into the record with the same title.
        On merge every supplied field overwrites the stored one except `id` and
        `createdAt`. Returns (record, created).
        """
        if not isinstance(item, dict):
            raise ValidationError("item must be an object")
        title = _require_text(item.get("title"), "title").strip()
        with self.lock.hold():
            records = self._load()
            idx = self._index_of(records, title)
            now = now_iso()
            # legacy names in the request must overwrite the stored current keys on merge
            incoming = canonical_keys(dict(item, title=title))
            if idx != -1:
                existing = records[idx]
                merged = existing.to_dict()
                merged.update(incoming)
                merged["id"] = existing.id
                merged["createdAt"] = existing.created_at or now
                record = TitleRecord.from_dict(merged)
            else:
                record = TitleRecord.from_dict(incoming)
                record.id = record.id or f"{title}-{epoch_millis()}"
                record.created_at = record.created_at or now
            self._normalize_layout(record, ledger_supplied="seasonEpisodes" in item)
            record.refresh_progress()
            record.updated_at = now
            if idx != -1:
                records[idx] = record
            else:
                records.append(record)
            self._save(records)
        if idx != -1:
            logger.info("Updated title %r (id=%s)", title, record.id)
        else:
            logger.info("Added title %r (id=%s kind=%s)", title, record.id, record.kind)
        return record, idx == -1

    # ---- episode progress ----
    def set_episode_watched(self, title: str, season: str, episode_number: int, watched: bool) -> int:
        """Mark one episode watched/unwatched; returns the title's watched count across all seasons."""
        season = _require_text(season, "season")
        number = _require_episode_number(episode_number)
        with self.lock.hold():
            records = self._load()
            record = self._find(records, title)
            record.ledger.set_watched(season, number, bool(watched))
            count = record.refresh_progress()
            record.touch()
            self._save(records)
        logger.info("Episode %s/%s of %r watched=%s (total watched %s)", season, number, title, bool(watched), count)
        return count

    def mark_through(self, title: str, season: str, episode_number: int, watched: bool = True) -> int:
        """Mark every episode of `season` up to and including `episode_number`, as one transaction."""
        season = _require_text(season, "season")
        number = _require_episode_number(episode_number)
        with self.lock.hold():
            records = self._load()
            record = self._find(records, title)
            if season not in record.ledger:
                raise NotFoundError("season not found")
            touched = record.ledger.mark_through(season, number, bool(watched))
            count = record.refresh_progress()
            record.touch()
            self._save(records)
        logger.info("Marked %d episodes of %r %s through %s watched=%s", touched, title, season, number, bool(watched))
        return count

    # ---- removal / ordering ----
    def remove(self, title: str) -> bool:
        """Delete the title. Deleting a missing title succeeds and changes nothing."""
        _require_text(title, "title")
        with self.lock.hold():
            records = self._load()
            kept = [r for r in records if r.title != title]
            if len(kept) == len(records):
                logger.debug("remove: %r not present, nothing to do", title)
                return False
            self._save(kept)
        logger.info("Deleted title %r", title)
        return True

    def reorder(self, ordered_titles: List[str], keep_unnamed: bool = False) -> List[TitleRecord]:
        """
        Assign order = position for each named title that exists.

        Records whose title is not named are DROPPED from the store unless
        keep_unnamed is set, in which case they follow the named ones with
        their order unchanged. Names not in the store are skipped; a repeated
        name counts once.
        """
        if not isinstance(ordered_titles, list):
            raise ValidationError("ordered titles must be a list")
        if any(not isinstance(t, str) for t in ordered_titles):
            raise ValidationError("ordered titles must be strings")
        with self.lock.hold():
            records = self._load()
            by_title = {r.title: r for r in records}
            result = []
            seen = set()
            for title in ordered_titles:
                record = by_title.get(title)
                if record is None or title in seen:
                    continue
                seen.add(title)
                record.order = len(result)
                result.append(record)
            dropped = [r for r in records if r.title not in seen]
            if keep_unnamed:
                result.extend(dropped)
            elif dropped:
                logger.warning("reorder dropped %d unnamed titles: %s",
                               len(dropped), ", ".join(r.title for r in dropped))
            self._save(result)
        logger.info("Reordered %d titles", len(seen))
        return result

    # ---- single-field updates ----
    def set_season(self, title: str, season: str) -> TitleRecord:
        season = _require_text(season, "season")
        with self.lock.hold():
            records = self._load()
            record = self._find(records, title)
            if record.has_known_length and record.seasons and season not in record.seasons:
                raise ValidationError(f"unknown season {season!r}")
            record.current_season = season
            record.touch()
            self._save(records)
        logger.info("Current season of %r set to %s", title, season)
        return record

    def set_notes(self, title: str, text: str) -> TitleRecord:
        text = _optional_text(text, "notes")
        with self.lock.hold():
            records = self._load()
            record = self._find(records, title)
            record.notes = text
            record.touch()
            self._save(records)
        logger.info("Updated notes for %r", title)
        return record

    def set_custom_fields(self, title: str, season: str, episodes: str) -> TitleRecord:
        """Free-text progress for titles whose episode count is unknown."""
        season = _optional_text(season, "custom season")
        episodes = _optional_text(episodes, "custom episodes")
        with self.lock.hold():
            records = self._load()
            record = self._find(records, title)
            record.custom_season = season
            record.custom_episodes = episodes
            record.touch()
            self._save(records)
        logger.info("Updated custom tracker for %r", title)
        return record
