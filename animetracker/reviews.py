# animetracker/reviews.py
from typing import Any, Dict, List, Optional
import logging

from animetracker.locking import SerialLock
from animetracker.models import Review, epoch_millis, now_iso
from animetracker.repo import MalformedDataError, PersistenceError
from animetracker.service import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5

def is_valid_review(entry: Any) -> bool:
    """A stored review needs a non-empty id, an integer rating 1-5 and non-blank text."""
    if not isinstance(entry, dict):
        return False
    rid = entry.get("id")
    if isinstance(rid, bool) or not isinstance(rid, (str, int)) or rid == "":
        return False
    rating = entry.get("rating")
    if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
        return False
    text = entry.get("text")
    return isinstance(text, str) and bool(text.strip())

def filter_reviews(entries: Any) -> List[Dict[str, Any]]:
    if not isinstance(entries, list):
        return []
    return [e for e in entries if is_valid_review(e)]

def newest_first(reviews: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(reviews, key=lambda r: (r.get("createdAt") or "", str(r.get("id"))), reverse=True)

class ReviewService:
    """
    Review store: lists of reviews keyed by catalog id.

    Invalid entries are dropped silently on both save and load, and a catalog id
    whose list ends up empty is removed from storage entirely.
    """

    def __init__(self, repo, lock: Optional[SerialLock] = None):
        self.repo = repo
        self.lock = lock or SerialLock()

    @staticmethod
    def _key(catalog_id: Any) -> str:
        if catalog_id is None or isinstance(catalog_id, bool) or not str(catalog_id).strip():
            raise ValidationError("catalog id required")
        return str(catalog_id).strip()

    def _load_all(self) -> Dict[str, Any]:
        try:
            return self.repo.load_reviews()
        except (MalformedDataError, PersistenceError) as e:
            logger.warning("Reviews unreadable, starting from empty: %s", e)
            return {}

    def _save_list(self, key: str, reviews: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        doc = self._load_all()
        filtered = filter_reviews(reviews)
        if filtered:
            doc[key] = filtered
        else:
            doc.pop(key, None)
        # sweep every other entry too, so a bad document heals itself on the next save
        cleaned = {}
        for k, entries in doc.items():
            valid = filter_reviews(entries)
            if valid:
                cleaned[k] = valid
            else:
                logger.debug("Dropping empty/invalid review entry %r", k)
        self.repo.save_reviews(cleaned)
        return filtered

    def save(self, catalog_id: Any, reviews: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Replace the whole review list for catalog_id. Returns what was actually persisted."""
        key = self._key(catalog_id)
        if not isinstance(reviews, list):
            raise ValidationError("reviews must be a list")
        with self.lock.hold():
            saved = self._save_list(key, reviews)
        dropped = len(reviews) - len(saved)
        if dropped:
            logger.warning("Dropped %d invalid reviews for %s", dropped, key)
        logger.info("Saved %d reviews for %s", len(saved), key)
        return saved

    def load(self, catalog_id: Any) -> List[Dict[str, Any]]:
        """Valid reviews for catalog_id; empty when none exist or storage is unreadable."""
        key = self._key(catalog_id)
        return filter_reviews(self._load_all().get(key))

    # ---- single-review operations ----
    @staticmethod
    def _check(rating: Any, text: Any) -> str:
        if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
            raise ValidationError(f"rating must be {MIN_RATING}-{MAX_RATING}")
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("review text required")
        return text.strip()

    def submit(self, catalog_id: Any, rating: int, text: str) -> Dict[str, Any]:
        key = self._key(catalog_id)
        text = self._check(rating, text)
        with self.lock.hold():
            current = filter_reviews(self._load_all().get(key))
            taken = {str(r["id"]) for r in current}
            rid = epoch_millis()
            while str(rid) in taken:
                rid += 1
            now = now_iso()
            review = Review(id=str(rid), rating=rating, text=text, created_at=now, updated_at=now)
            current.append(review.to_dict())
            self._save_list(key, current)
        logger.info("Review %s submitted for %s", review.id, key)
        return review.to_dict()

    def edit(self, catalog_id: Any, review_id: Any, rating: int, text: str) -> Dict[str, Any]:
        key = self._key(catalog_id)
        text = self._check(rating, text)
        with self.lock.hold():
            current = filter_reviews(self._load_all().get(key))
            for i, entry in enumerate(current):
                if str(entry["id"]) == str(review_id):
                    review = Review.from_dict(entry)
                    review.rating = rating
                    review.text = text
                    review.updated_at = now_iso()
                    current[i] = review.to_dict()
                    break
            else:
                logger.debug("edit: review %s for %s not found", review_id, key)
                raise NotFoundError("review not found")
            self._save_list(key, current)
        logger.info("Review %s for %s updated", review_id, key)
        return current[i]

    def delete(self, catalog_id: Any, review_id: Any) -> None:
        key = self._key(catalog_id)
        with self.lock.hold():
            current = filter_reviews(self._load_all().get(key))
            kept = [r for r in current if str(r["id"]) != str(review_id)]
            if len(kept) == len(current):
                raise NotFoundError("review not found")
            self._save_list(key, kept)
        logger.info("Review %s for %s deleted", review_id, key)
