import json
import os
import logging
from flask import Flask
from animetracker.catalog import CatalogError, StaticCatalog
from animetracker.repo import InMemoryRepo, JsonFileRepo, SqliteRepo
from animetracker.reviews import ReviewService
from animetracker.service import WatchlistService
from animetracker.web import register_routes, register_error_handlers

DEFAULT_CFG = {
    "data_dir": "data",
    "storage": "json",  # json | sqlite | memory
    "catalog_file": None,
    "debug": True,
    "host": "127.0.0.1",
    "port": 5000,
    "logging_level": "INFO"
}

def load_config(path="config.json"):
    if not os.path.exists(path):
        print("config.json not found, using defaults:", DEFAULT_CFG)
        return DEFAULT_CFG.copy()
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = json.load(f)
    except (OSError, ValueError) as e:
        print("Failed to read config.json:", e, "using defaults")
        return DEFAULT_CFG.copy()
    merged = DEFAULT_CFG.copy()
    merged.update(cfg)
    return merged

def configure_logging(level_name: str, debug: bool = False):
    level = getattr(logging, str(level_name).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # quieter werkzeug when not debugging
    logging.getLogger("werkzeug").setLevel(logging.WARNING if not debug else logging.INFO)

def build_repo(cfg):
    storage = cfg.get("storage", "json")
    if storage == "sqlite":
        return SqliteRepo(os.path.join(cfg["data_dir"], "tracker.db"))
    if storage == "memory":
        return InMemoryRepo()
    return JsonFileRepo(cfg["data_dir"])

def build_catalog(cfg):
    path = cfg.get("catalog_file")
    if not path:
        return StaticCatalog()
    try:
        return StaticCatalog.from_file(path)
    except CatalogError as e:
        logging.getLogger(__name__).warning("Catalog unavailable, search will be empty: %s", e)
        return StaticCatalog()

def create_app(cfg=None):
    if cfg is None:
        cfg = load_config()
    else:
        cfg = {**DEFAULT_CFG, **cfg}
    configure_logging(cfg.get("logging_level", "INFO"), cfg.get("debug", False))
    logger = logging.getLogger(__name__)
    logger.info("Starting app with config: %s", {k: v for k, v in cfg.items() if k != "data_dir"})

    app = Flask(__name__)
    app.secret_key = os.environ.get("SECRET_KEY", "dev-key")
    repo = build_repo(cfg)
    watchlist = WatchlistService(repo)
    reviews = ReviewService(repo)
    catalog = build_catalog(cfg)

    register_routes(app, watchlist, reviews, catalog)
    register_error_handlers(app)
    return app

if __name__ == "__main__":
    cfg = load_config()
    app = create_app(cfg)
    app.run(host=cfg.get("host", "127.0.0.1"), port=cfg.get("port", 5000), debug=cfg.get("debug", True))
