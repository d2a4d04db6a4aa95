# animetracker/repo.py
import json
import logging
import os
import sqlite3
import tempfile
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from animetracker.models import now_iso

logger = logging.getLogger(__name__)

WATCHLIST_DOC = "watchlist"
REVIEWS_DOC = "reviews"

# --- Exceptions ---
class RepoError(Exception):
    pass

class PersistenceError(RepoError):
    """Raised when the underlying storage cannot be read or written."""
    pass

class MalformedDataError(RepoError):
    """Raised when a persisted document does not parse or has the wrong shape."""
    pass


class DocumentRepo:
    """
    Whole-document persistence: one JSON document per concern.
    Subclasses implement `_read` (raw text or None when absent) and `_write`.
    """

    def _read(self, name: str) -> Optional[str]:
        raise NotImplementedError

    def _write(self, name: str, text: str) -> None:
        raise NotImplementedError

    def _load(self, name: str, expected: type) -> Any:
        text = self._read(name)
        if text is None or not text.strip():
            return expected()
        try:
            data = json.loads(text)
        except ValueError as e:
            raise MalformedDataError(f"{name} document is not valid JSON: {e}") from e
        if not isinstance(data, expected):
            raise MalformedDataError(f"{name} document must be a JSON {expected.__name__}")
        return data

    def _save(self, name: str, data: Any) -> None:
        try:
            text = json.dumps(data, ensure_ascii=False, indent=2)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"{name} document is not JSON serializable: {e}") from e
        self._write(name, text)

    def load_watchlist(self) -> List[Dict[str, Any]]:
        return self._load(WATCHLIST_DOC, list)

    def save_watchlist(self, items: List[Dict[str, Any]]) -> None:
        self._save(WATCHLIST_DOC, items)

    def load_reviews(self) -> Dict[str, Any]:
        return self._load(REVIEWS_DOC, dict)

    def save_reviews(self, reviews: Dict[str, Any]) -> None:
        self._save(REVIEWS_DOC, reviews)


# --- JSON file repo (default) ---
class JsonFileRepo(DocumentRepo):
    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        os.makedirs(data_dir, exist_ok=True)

    def path_for(self, name: str) -> str:
        return os.path.join(self.data_dir, f"{name}.json")

    def _read(self, name: str) -> Optional[str]:
        path = self.path_for(name)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceError(f"cannot read {path}: {e}") from e

    def _write(self, name: str, text: str) -> None:
        path = self.path_for(name)
        tmp_path = None
        try:
            # write next to the target, then swap it in so readers never see half a file
            with tempfile.NamedTemporaryFile("w", dir=self.data_dir, delete=False, encoding="utf-8") as tmp:
                tmp_path = tmp.name
                tmp.write(text)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_path, path)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise PersistenceError(f"cannot write {path}: {e}") from e
        logger.debug("Wrote %s (%d bytes)", path, len(text))


# --- SQLite repo: same documents, kept in one table ---
SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS documents (
    name TEXT PRIMARY KEY,
    body TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

class SqliteRepo(DocumentRepo):
    def __init__(self, db_path: str):
        self.db_path = db_path
        dirname = os.path.dirname(db_path)
        if dirname:
            os.makedirs(dirname, exist_ok=True)
        with self.conn() as c:
            c.executescript(SCHEMA_SQL)

    @contextmanager
    def conn(self):
        try:
            con = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise PersistenceError(f"cannot open {self.db_path}: {e}") from e
        con.row_factory = sqlite3.Row
        try:
            yield con
            con.commit()
        except sqlite3.Error as e:
            raise PersistenceError(str(e)) from e
        finally:
            con.close()

    def _read(self, name: str) -> Optional[str]:
        with self.conn() as c:
            r = c.execute("SELECT body FROM documents WHERE name = ?", (name,)).fetchone()
            return r["body"] if r else None

    def _write(self, name: str, text: str) -> None:
        with self.conn() as c:
            c.execute(
                "INSERT INTO documents (name, body, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(name) DO UPDATE SET body = excluded.body, updated_at = excluded.updated_at",
                (name, text, now_iso()))


# --- In-memory repo (simple, used for unit tests) ---
class InMemoryRepo(DocumentRepo):
    def __init__(self, documents: Optional[Dict[str, str]] = None):
        # raw text per document, so callers never share objects with the store
        self.documents: Dict[str, str] = dict(documents or {})
        self.writes = 0

    def _read(self, name: str) -> Optional[str]:
        return self.documents.get(name)

    def _write(self, name: str, text: str) -> None:
        self.documents[name] = text
        self.writes += 1
