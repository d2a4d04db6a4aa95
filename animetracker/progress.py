from typing import Iterable, List, Optional, Tuple

from animetracker.ledger import EpisodeLedger

KIND_ORDER = ("anime", "manga")


def aggregate(ledger: EpisodeLedger, total: Optional[int], current_completed: bool = False) -> Tuple[int, bool]:
    """
    Count watched episodes across every season and derive the completion flag.

    With an unknown total there is nothing to compare against, so the caller's
    current completion flag is returned unchanged.
    """
    watched = ledger.watched_count()
    if total is None:
        return watched, bool(current_completed)
    return watched, watched >= total


def progress_percentage(watched: int, total: Optional[int]) -> int:
    if not watched or not total or total <= 0:
        return 0
    # half-up
    return int(watched * 100 / total + 0.5)


def is_display_completed(record) -> bool:
    return record.total_episodes is not None and record.watched_episodes >= record.total_episodes


def sort_for_display(records: Iterable, kind: Optional[str] = None) -> List:
    """
    Order records the way the watchlist shows them: per kind partition,
    incomplete titles first, then by ascending `order`.
    """
    records = list(records)
    if kind is not None:
        records = [r for r in records if r.kind == kind]

    def key(r):
        kind_rank = KIND_ORDER.index(r.kind) if r.kind in KIND_ORDER else len(KIND_ORDER)
        return (kind_rank, is_display_completed(r), r.order)

    return sorted(records, key=key)
