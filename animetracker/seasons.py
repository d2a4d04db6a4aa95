# animetracker/seasons.py
import math
from typing import Any, List, Optional, Tuple

from animetracker.ledger import Episode, EpisodeLedger

NOMINAL_SEASON_LENGTH = 13
PLACEHOLDER_EPISODES = 12


def season_label(index: int) -> str:
    return f"Season {index + 1}"


def parse_total(value: Any) -> Optional[int]:
    """Return the episode total as a positive int, or None when it is unknown."""
    if value is None or isinstance(value, bool):
        return None
    try:
        total = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return total if total > 0 else None


def detect_seasons(total: Any) -> List[str]:
    count = parse_total(total)
    if count is None or count <= NOMINAL_SEASON_LENGTH:
        n = 1
    elif count <= 26:
        n = 2
    elif count <= 52:
        n = 4
    else:
        n = math.ceil(count / NOMINAL_SEASON_LENGTH)
    return [season_label(i) for i in range(n)]


def _episode_range(start: int, end: int) -> List[Episode]:
    return [Episode(number=n) for n in range(start, end + 1)]


def build_season_episodes(seasons: List[str], total: Any) -> EpisodeLedger:
    count = parse_total(total)
    if count is None:
        # placeholder ledger; unknown-length titles use the custom tracker instead
        return EpisodeLedger({season_label(0): _episode_range(1, PLACEHOLDER_EPISODES)})
    if len(seasons) == 1:
        return EpisodeLedger({seasons[0]: _episode_range(1, count)})
    per_season = math.ceil(count / len(seasons))
    layout = {}
    for i, label in enumerate(seasons):
        start = i * per_season + 1
        end = min((i + 1) * per_season, count)
        layout[label] = _episode_range(start, end)
    return EpisodeLedger(layout)


def partition(total: Any) -> Tuple[List[str], EpisodeLedger]:
    """Season layout and starting ledger for a total episode count."""
    seasons = detect_seasons(total)
    return seasons, build_season_episodes(seasons, total)


def verify_ledger(ledger: EpisodeLedger, total: Any) -> List[str]:
    """
    Check a ledger against a known episode total.

    Returns a list of problems; an empty list means every episode 1..total is
    present exactly once and each season is strictly increasing. Unknown totals
    have nothing to check against and always verify clean.
    """
    count = parse_total(total)
    if count is None:
        return []
    problems = []
    seen = {}
    for label in ledger.seasons():
        previous = 0
        for ep in ledger.episodes(label):
            if ep.number <= previous:
                problems.append(f"{label}: episode {ep.number} out of order")
            previous = ep.number
            if ep.number > count:
                problems.append(f"{label}: episode {ep.number} exceeds total {count}")
            if ep.number in seen:
                problems.append(f"episode {ep.number} duplicated in {seen[ep.number]} and {label}")
            else:
                seen[ep.number] = label
    missing = [n for n in range(1, count + 1) if n not in seen]
    if missing:
        problems.append("missing episodes: " + ", ".join(str(n) for n in missing))
    return problems
