from flask import Blueprint, current_app, jsonify, request
from animetracker.catalog import CatalogError, CatalogService, title_from_catalog
from animetracker.progress import progress_percentage
from animetracker.repo import PersistenceError
from animetracker.reviews import ReviewService, newest_first
from animetracker.service import NotFoundError, ValidationError, WatchlistService
import logging

logger = logging.getLogger(__name__)

bp = Blueprint("main", __name__, url_prefix="/api")  # blueprint name = 'main'

def register_routes(app, watchlist: WatchlistService, reviews: ReviewService, catalog: CatalogService):
    """
    Register blueprint and ensure the services are in app.config.
    Call this once during app creation (run.create_app does this).
    """
    app.config.setdefault("WATCHLIST", watchlist)
    app.config.setdefault("REVIEWS", reviews)
    app.config.setdefault("CATALOG", catalog)
    app.register_blueprint(bp)
    logger.debug("Registered blueprint 'main' and injected services")

def _failure(e: Exception, status: int):
    return jsonify({"success": False, "error": str(e), "type": type(e).__name__}), status

def register_error_handlers(app):
    """Centralized handlers for service exceptions."""
    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        logger.warning("ValidationError: %s", e)
        return _failure(e, 400)

    @app.errorhandler(NotFoundError)
    def handle_not_found(e):
        logger.info("NotFoundError: %s", e)
        return _failure(e, 404)

    @app.errorhandler(PersistenceError)
    def handle_persistence_error(e):
        logger.error("PersistenceError: %s", e)
        return _failure(e, 500)

# helpers to get service instances
def watchlist_service() -> WatchlistService:
    return current_app.config["WATCHLIST"]

def review_service() -> ReviewService:
    return current_app.config["REVIEWS"]

def catalog_service() -> CatalogService:
    return current_app.config["CATALOG"]

def _body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("JSON object body required")
    return data

def _flag(value, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")

def _title_view(record) -> dict:
    out = record.to_dict()
    out["progress"] = progress_percentage(record.watched_episodes, record.total_episodes)
    return out

# -----------------------
# Watchlist
# -----------------------
@bp.route("/titles", methods=["GET"])
def list_titles():
    svc = watchlist_service()
    kind = request.args.get("kind") or None
    if _flag(request.args.get("sorted"), default=True):
        records = svc.list_for_display(kind=kind)
    else:
        records = [r for r in svc.list() if kind is None or r.kind == kind]
    return jsonify({"success": True, "titles": [_title_view(r) for r in records]})

@bp.route("/titles", methods=["POST"])
def add_or_update_title():
    record, created = watchlist_service().add(_body())
    message = "Added to watchlist" if created else "Item updated"
    return jsonify({"success": True, "created": created, "message": message,
                    "title": _title_view(record)}), (201 if created else 200)

@bp.route("/titles", methods=["DELETE"])
def delete_title():
    data = _body()
    removed = watchlist_service().remove(data.get("title"))
    return jsonify({"success": True, "removed": removed})

@bp.route("/titles/episode", methods=["POST"])
def set_episode_watched():
    data = _body()
    count = watchlist_service().set_episode_watched(
        data.get("title"), data.get("season"), data.get("episode"), _flag(data.get("watched")))
    return jsonify({"success": True, "watchedCount": count})

@bp.route("/titles/episodes/through", methods=["POST"])
def mark_through():
    data = _body()
    count = watchlist_service().mark_through(
        data.get("title"), data.get("season"), data.get("episode"), _flag(data.get("watched"), default=True))
    return jsonify({"success": True, "watchedCount": count})

@bp.route("/titles/season", methods=["POST"])
def set_season():
    data = _body()
    record = watchlist_service().set_season(data.get("title"), data.get("season"))
    return jsonify({"success": True, "currentSeason": record.current_season})

@bp.route("/titles/notes", methods=["POST"])
def set_notes():
    data = _body()
    watchlist_service().set_notes(data.get("title"), data.get("notes", ""))
    return jsonify({"success": True})

@bp.route("/titles/custom", methods=["POST"])
def set_custom_fields():
    data = _body()
    watchlist_service().set_custom_fields(
        data.get("title"), data.get("customSeason", ""), data.get("customEpisodes", ""))
    return jsonify({"success": True})

@bp.route("/titles/order", methods=["POST"])
def reorder_titles():
    data = _body()
    result = watchlist_service().reorder(data.get("titles"), keep_unnamed=_flag(data.get("keepUnnamed")))
    return jsonify({"success": True, "titles": [r.title for r in result]})

# -----------------------
# Reviews
# -----------------------
@bp.route("/reviews/<catalog_id>", methods=["GET"])
def load_reviews(catalog_id: str):
    reviews = review_service().load(catalog_id)
    if _flag(request.args.get("newest")):
        reviews = newest_first(reviews)
    return jsonify({"success": True, "reviews": reviews})

@bp.route("/reviews/<catalog_id>", methods=["PUT"])
def save_reviews(catalog_id: str):
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        data = data.get("reviews")
    saved = review_service().save(catalog_id, data)
    return jsonify({"success": True, "reviews": saved})

@bp.route("/reviews/<catalog_id>/submit", methods=["POST"])
def submit_review(catalog_id: str):
    data = _body()
    review = review_service().submit(catalog_id, data.get("rating"), data.get("text"))
    return jsonify({"success": True, "review": review}), 201

@bp.route("/reviews/<catalog_id>/<review_id>", methods=["POST"])
def edit_review(catalog_id: str, review_id: str):
    data = _body()
    review = review_service().edit(catalog_id, review_id, data.get("rating"), data.get("text"))
    return jsonify({"success": True, "review": review})

@bp.route("/reviews/<catalog_id>/<review_id>", methods=["DELETE"])
def delete_review(catalog_id: str, review_id: str):
    review_service().delete(catalog_id, review_id)
    return jsonify({"success": True})

# -----------------------
# Catalog
# -----------------------
@bp.route("/search")
def search():
    q = request.args.get("q", "").strip()
    kind = request.args.get("kind", "anime")
    if not q:
        raise ValidationError("search term required")
    try:
        results = catalog_service().search(q, kind)
    except CatalogError as e:
        # catalog trouble never reaches the store; show it and return nothing
        logger.warning("Catalog search failed for %r: %s", q, e)
        return jsonify({"success": False, "results": [], "error": str(e)})
    return jsonify({"success": True, "results": results})

@bp.route("/catalog/<kind>/<catalog_id>/add", methods=["POST"])
def add_from_catalog(kind: str, catalog_id: str):
    try:
        detail = catalog_service().detail(catalog_id, kind)
    except CatalogError as e:
        logger.warning("Catalog detail failed for %s %s: %s", kind, catalog_id, e)
        return jsonify({"success": False, "error": str(e)}), 502
    svc = watchlist_service()
    known = {r.title for r in svc.list()}
    item = title_from_catalog(detail, kind, with_layout=detail.get("title") not in known)
    record, created = svc.add(item)
    return jsonify({"success": True, "created": created, "title": _title_view(record)}), (201 if created else 200)
