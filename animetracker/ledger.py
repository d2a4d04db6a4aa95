# animetracker/ledger.py
from bisect import bisect_left
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional


@dataclass
class Episode:
    number: int
    watched: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"number": self.number, "watched": self.watched}

    @classmethod
    def from_dict(cls, raw: Any) -> Optional["Episode"]:
        """Build an episode from a persisted entry; None when the entry is unusable."""
        if not isinstance(raw, dict):
            return None
        number = raw.get("number", raw.get("episodeNumber"))
        try:
            number = int(number)
        except (TypeError, ValueError):
            return None
        if number < 1:
            return None
        return cls(number=number, watched=bool(raw.get("watched", False)))


class EpisodeLedger:
    """
    Mapping of season label to its episodes, kept sorted by episode number.
    Source of truth for watch progress; a title's watched count and completion
    flag are derived from it.
    """

    def __init__(self, seasons: Optional[Dict[str, List[Episode]]] = None):
        self._seasons: Dict[str, List[Episode]] = {}
        for label, episodes in (seasons or {}).items():
            self._seasons[label] = sorted(episodes, key=lambda e: e.number)

    def __len__(self) -> int:
        return len(self._seasons)

    def __contains__(self, season: str) -> bool:
        return season in self._seasons

    def __iter__(self) -> Iterator[str]:
        return iter(self._seasons)

    def __eq__(self, other) -> bool:
        if not isinstance(other, EpisodeLedger):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def seasons(self) -> List[str]:
        return list(self._seasons)

    def episodes(self, season: str) -> List[Episode]:
        return list(self._seasons.get(season, []))

    def all_episodes(self) -> Iterator[Episode]:
        for episodes in self._seasons.values():
            yield from episodes

    def is_empty(self) -> bool:
        return self.episode_count() == 0

    def ensure_season(self, season: str) -> List[Episode]:
        return self._seasons.setdefault(season, [])

    def find(self, season: str, number: int) -> Optional[Episode]:
        for ep in self._seasons.get(season, []):
            if ep.number == number:
                return ep
        return None

    def set_watched(self, season: str, number: int, watched: bool) -> Episode:
        """
        Set the watched flag of one episode, creating the season and/or the
        episode entry when missing. New entries are inserted at their number's
        position so the season stays strictly increasing.
        """
        episodes = self.ensure_season(season)
        ep = self.find(season, number)
        if ep is None:
            ep = Episode(number=number, watched=watched)
            idx = bisect_left([e.number for e in episodes], number)
            episodes.insert(idx, ep)
        else:
            ep.watched = watched
        return ep

    def mark_through(self, season: str, number: int, watched: bool = True) -> int:
        """Set every episode of `season` numbered <= `number`. Returns how many entries were touched."""
        touched = 0
        for ep in self._seasons.get(season, []):
            if ep.number <= number:
                ep.watched = watched
                touched += 1
        return touched

    def watched_numbers(self) -> List[int]:
        return sorted(ep.number for ep in self.all_episodes() if ep.watched)

    def watched_count(self) -> int:
        return sum(1 for ep in self.all_episodes() if ep.watched)

    def episode_count(self) -> int:
        return sum(len(eps) for eps in self._seasons.values())

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {label: [ep.to_dict() for ep in eps] for label, eps in self._seasons.items()}

    @classmethod
    def from_dict(cls, raw: Any) -> "EpisodeLedger":
        """Rebuild a ledger from its persisted form, skipping malformed entries."""
        if not isinstance(raw, dict):
            return cls()
        seasons: Dict[str, List[Episode]] = {}
        for label, entries in raw.items():
            if not isinstance(entries, list):
                continue
            eps = [ep for ep in (Episode.from_dict(e) for e in entries) if ep is not None]
            seasons[str(label)] = eps
        return cls(seasons)
