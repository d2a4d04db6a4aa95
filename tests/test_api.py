import pytest
from run import create_app
from animetracker.catalog import CatalogError, CatalogService, StaticCatalog
from animetracker.repo import InMemoryRepo
from animetracker.reviews import ReviewService
from animetracker.service import WatchlistService

CATALOG = [
    {"mal_id": 52991, "title": "Sousou no Frieren", "type": "anime", "episodes": 28,
     "images": {"jpg": {"image_url": "https://img.example/frieren.jpg"}}, "score": 9.3,
     "synopsis": "After the demon king falls."},
    {"mal_id": 2, "title": "Berserk", "type": "manga", "chapters": None},
    {"mal_id": 21, "title": "One Piece", "type": "anime", "episodes": None},
]

class BrokenCatalog(CatalogService):
    def search(self, query, kind="anime"):
        raise CatalogError("catalog offline")

    def detail(self, catalog_id, kind="anime"):
        raise CatalogError("catalog offline")

@pytest.fixture
def api_client(tmp_path):
    """Flask test client wired to in-memory services."""
    app = create_app({"storage": "memory", "data_dir": str(tmp_path), "debug": False})
    app.testing = True
    repo = InMemoryRepo()
    watchlist = WatchlistService(repo)
    reviews = ReviewService(repo)
    app.config["WATCHLIST"] = watchlist
    app.config["REVIEWS"] = reviews
    app.config["CATALOG"] = StaticCatalog(CATALOG)
    with app.test_client() as client:
        yield client, watchlist, reviews

def test_api_add_and_list_titles(api_client):
    client, watchlist, _ = api_client
    resp = client.post("/api/titles", json={"title": "Dungeon Meshi", "totalEpisodes": 24})
    assert resp.status_code == 201
    data = resp.get_json()
    assert data["success"] is True and data["created"] is True
    assert data["message"] == "Added to watchlist"
    assert data["title"]["seasons"] == ["Season 1", "Season 2"]
    assert data["title"]["progress"] == 0

    resp = client.post("/api/titles", json={"title": "Dungeon Meshi", "notes": "food"})
    assert resp.status_code == 200
    assert resp.get_json()["message"] == "Item updated"

    titles = client.get("/api/titles").get_json()["titles"]
    assert [t["title"] for t in titles] == ["Dungeon Meshi"]
    assert titles[0]["notes"] == "food"

def test_api_add_requires_json_object(api_client):
    client, _, _ = api_client
    resp = client.post("/api/titles", data="title=x", content_type="application/x-www-form-urlencoded")
    assert resp.status_code == 400
    body = resp.get_json()
    assert body == {"success": False, "error": "JSON object body required", "type": "ValidationError"}

def test_api_add_requires_title(api_client):
    client, _, _ = api_client
    resp = client.post("/api/titles", json={"totalEpisodes": 3})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "title required"

def test_api_episode_toggle_and_progress(api_client):
    client, watchlist, _ = api_client
    watchlist.add({"title": "Short", "totalEpisodes": 4})
    resp = client.post("/api/titles/episode", json={"title": "Short", "season": "Season 1", "episode": 1, "watched": True})
    assert resp.status_code == 200
    assert resp.get_json() == {"success": True, "watchedCount": 1}

    resp = client.post("/api/titles/episodes/through", json={"title": "Short", "season": "Season 1", "episode": 4})
    assert resp.get_json()["watchedCount"] == 4
    view = client.get("/api/titles").get_json()["titles"][0]
    assert view["isCompleted"] is True and view["progress"] == 100

def test_api_episode_missing_title_is_404(api_client):
    client, _, _ = api_client
    resp = client.post("/api/titles/episode", json={"title": "Ghost", "season": "Season 1", "episode": 1, "watched": True})
    assert resp.status_code == 404
    assert resp.get_json()["type"] == "NotFoundError"

def test_api_episode_bad_number_is_400(api_client):
    client, watchlist, _ = api_client
    watchlist.add({"title": "Short", "totalEpisodes": 4})
    resp = client.post("/api/titles/episode", json={"title": "Short", "season": "Season 1", "episode": 0, "watched": True})
    assert resp.status_code == 400

def test_api_delete_title(api_client):
    client, watchlist, _ = api_client
    watchlist.add({"title": "Gone"})
    resp = client.delete("/api/titles", json={"title": "Gone"})
    assert resp.get_json() == {"success": True, "removed": True}
    resp = client.delete("/api/titles", json={"title": "Gone"})
    assert resp.status_code == 200
    assert resp.get_json()["removed"] is False

def test_api_single_field_updates(api_client):
    client, watchlist, _ = api_client
    watchlist.add({"title": "Long", "totalEpisodes": 26})
    resp = client.post("/api/titles/season", json={"title": "Long", "season": "Season 2"})
    assert resp.get_json()["currentSeason"] == "Season 2"
    assert client.post("/api/titles/season", json={"title": "Long", "season": "Season 9"}).status_code == 400
    assert client.post("/api/titles/notes", json={"title": "Long", "notes": "rewatch"}).status_code == 200
    assert client.post("/api/titles/custom", json={"title": "Long", "customSeason": "S2", "customEpisodes": "14"}).status_code == 200
    got = watchlist.get("Long")
    assert got.notes == "rewatch"
    assert (got.custom_season, got.custom_episodes) == ("S2", "14")

def test_api_reorder(api_client):
    client, watchlist, _ = api_client
    for t in ("A", "B", "C"):
        watchlist.add({"title": t})
    resp = client.post("/api/titles/order", json={"titles": ["C", "A"]})
    assert resp.get_json()["titles"] == ["C", "A"]
    assert [r.title for r in watchlist.list()] == ["C", "A"]

    watchlist.add({"title": "D"})
    resp = client.post("/api/titles/order", json={"titles": ["A"], "keepUnnamed": True})
    assert resp.get_json()["titles"] == ["A", "C", "D"]

def test_api_list_filter_and_sort(api_client):
    client, watchlist, _ = api_client
    watchlist.add({"title": "Done", "totalEpisodes": 1, "order": 0})
    watchlist.add({"title": "Going", "totalEpisodes": 12, "order": 1})
    watchlist.add({"title": "Book", "kind": "manga", "order": 2})
    watchlist.set_episode_watched("Done", "Season 1", 1, True)

    titles = [t["title"] for t in client.get("/api/titles?kind=anime").get_json()["titles"]]
    assert titles == ["Going", "Done"]
    titles = [t["title"] for t in client.get("/api/titles?kind=anime&sorted=0").get_json()["titles"]]
    assert titles == ["Done", "Going"]
    assert [t["title"] for t in client.get("/api/titles?kind=manga").get_json()["titles"]] == ["Book"]

def test_api_reviews_flow(api_client):
    client, _, reviews = api_client
    resp = client.post("/api/reviews/52991/submit", json={"rating": 5, "text": "Masterpiece"})
    assert resp.status_code == 201
    review = resp.get_json()["review"]
    assert review["rating"] == 5

    resp = client.post(f"/api/reviews/52991/{review['id']}", json={"rating": 4, "text": "Still great"})
    assert resp.get_json()["review"]["text"] == "Still great"

    listed = client.get("/api/reviews/52991").get_json()["reviews"]
    assert [r["id"] for r in listed] == [review["id"]]

    assert client.delete(f"/api/reviews/52991/{review['id']}").status_code == 200
    assert client.get("/api/reviews/52991").get_json()["reviews"] == []
    assert client.delete(f"/api/reviews/52991/{review['id']}").status_code == 404

def test_api_reviews_bulk_save_filters(api_client):
    client, _, reviews = api_client
    payload = {"reviews": [{"id": "1", "rating": 3, "text": "ok"}, {"id": "2", "rating": 0, "text": "bad"}]}
    resp = client.put("/api/reviews/7", json=payload)
    assert resp.get_json()["reviews"] == [{"id": "1", "rating": 3, "text": "ok"}]
    resp = client.put("/api/reviews/7", json=[])
    assert resp.get_json()["reviews"] == []
    assert reviews.repo.load_reviews() == {}

def test_api_reviews_reject_bad_rating(api_client):
    client, _, _ = api_client
    resp = client.post("/api/reviews/1/submit", json={"rating": 6, "text": "x"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "rating must be 1-5"

def test_api_search(api_client):
    client, _, _ = api_client
    resp = client.get("/api/search?q=frie")
    assert resp.status_code == 200
    assert [r["title"] for r in resp.get_json()["results"]] == ["Sousou no Frieren"]
    resp = client.get("/api/search?q=berserk&kind=manga")
    assert [r["mal_id"] for r in resp.get_json()["results"]] == [2]
    assert client.get("/api/search?q=").status_code == 400

def test_api_search_degrades_when_catalog_fails(api_client):
    client, watchlist, _ = api_client
    client.application.config["CATALOG"] = BrokenCatalog()
    resp = client.get("/api/search?q=anything")
    assert resp.status_code == 200
    assert resp.get_json() == {"success": False, "results": [], "error": "catalog offline"}
    resp = client.post("/api/catalog/anime/1/add")
    assert resp.status_code == 502
    assert watchlist.list() == []

def test_api_add_from_catalog(api_client):
    client, watchlist, _ = api_client
    resp = client.post("/api/catalog/anime/52991/add")
    assert resp.status_code == 201
    view = resp.get_json()["title"]
    assert view["catalogId"] == 52991
    assert view["image"] == "https://img.example/frieren.jpg"
    assert view["seasons"] == ["Season 1", "Season 2", "Season 3", "Season 4"]

    watchlist.set_episode_watched("Sousou no Frieren", "Season 1", 1, True)
    resp = client.post("/api/catalog/anime/52991/add")
    assert resp.status_code == 200
    assert resp.get_json()["title"]["watchedEpisodes"] == 1

def test_api_add_from_catalog_unknown_length(api_client):
    client, _, _ = api_client
    view = client.post("/api/catalog/anime/21/add").get_json()["title"]
    assert view["totalEpisodes"] == "Unknown"
    assert view["seasons"] == ["Season 1"]
    assert len(view["seasonEpisodes"]["Season 1"]) == 12
    view = client.post("/api/catalog/manga/2/add").get_json()["title"]
    assert view["kind"] == "manga"

def test_api_reorder_rejects_non_string_names(api_client):
    client, watchlist, _ = api_client
    watchlist.add({"title": "A"})
    resp = client.post("/api/titles/order", json={"titles": [{"t": 1}]})
    assert resp.status_code == 400
    assert resp.get_json() == {"success": False, "error": "ordered titles must be strings", "type": "ValidationError"}
    assert [r.title for r in watchlist.list()] == ["A"]

def test_api_notes_must_be_text(api_client):
    client, watchlist, _ = api_client
    watchlist.add({"title": "A"})
    resp = client.post("/api/titles/notes", json={"title": "A", "notes": 5})
    assert resp.status_code == 400
    assert resp.get_json()["type"] == "ValidationError"
    assert watchlist.get("A").notes == ""

def test_api_merge_with_legacy_keys(api_client):
    client, watchlist, _ = api_client
    client.post("/api/titles", json={"title": "X", "type": "anime", "episodes": "Unknown"})
    resp = client.post("/api/titles", json={"title": "X", "type": "manga", "episodes": 24})
    assert resp.status_code == 200
    view = resp.get_json()["title"]
    assert view["kind"] == "manga" and view["totalEpisodes"] == 24
