# scripts/init_db.py
import os
import sys

from animetracker.repo import JsonFileRepo, SqliteRepo

DATA_DIR = sys.argv[1] if len(sys.argv) > 1 else "data"
STORAGE = sys.argv[2] if len(sys.argv) > 2 else "json"

if STORAGE == "sqlite":
    repo = SqliteRepo(os.path.join(DATA_DIR, "tracker.db"))
else:
    repo = JsonFileRepo(DATA_DIR)

# only create empty documents; never overwrite existing data
if not repo.load_watchlist():
    repo.save_watchlist([])
if not repo.load_reviews():
    repo.save_reviews({})
print("initialized", STORAGE, "store at", DATA_DIR)
