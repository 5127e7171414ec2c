from jungian_journals.caching import CacheManager
from jungian_journals.recommendation_engine import RecommendationSystem


def test_keyword_recommendations_order(recsys, now):
    recs = recsys.get_keyword_based_recommendations("v1", limit=5, now=now)
    assert [r["id"] for r in recs] == ["v2", "v3", "v4"]
    assert "score" not in recs[0]
    assert recs[0]["keywords"] == ["Shadow", "persona"]
    assert recs[0]["thumbnail"] == "https://img.youtube.com/vi/AAAAAAAAAAA/maxresdefault.jpg"
    assert recs[2]["keywords"] == []


def test_keyword_recommendations_respects_limit(recsys, now):
    assert len(recsys.get_keyword_based_recommendations("v1", limit=1, now=now)) == 1


def test_keyword_recommendations_missing_video(recsys):
    assert recsys.get_keyword_based_recommendations("nope") == []


def test_keyword_recommendations_db_error(recsys, monkeypatch):
    def boom(*a, **kw):
        raise RuntimeError("down")
    monkeypatch.setattr(recsys.data_access, "fetch_candidates", boom)
    assert recsys.get_keyword_based_recommendations("v1") == []


def test_vector_falls_back_to_keywords_on_error(recsys, monkeypatch):
    def boom(*a, **kw):
        raise RuntimeError("rpc missing")
    monkeypatch.setattr(recsys.data_access, "match_videos", boom)
    recs = recsys.get_vector_based_recommendations("v1", [0.1, 0.2], limit=2)
    assert [r["id"] for r in recs] == ["v2", "v3"]


def test_vector_empty_result_is_returned(recsys):
    assert recsys.get_vector_based_recommendations("v1", [0.1]) == []


def test_hybrid_prefers_vector_results(recsys, monkeypatch):
    monkeypatch.setattr(recsys.data_access, "match_videos", lambda *a, **kw: [{"id": "v3"}])
    assert recsys.get_recommendations("v1", embedding=[0.5]) == [{"id": "v3"}]


def test_hybrid_uses_stored_embedding(recsys, dummy_db, monkeypatch):
    dummy_db.tables["video_content"][0]["embedding"] = "[0.1,0.2]"
    calls = []

    def match(embedding, count, current):
        calls.append(embedding)
        return [{"id": "v4"}]
    monkeypatch.setattr(recsys.data_access, "match_videos", match)
    assert recsys.get_recommendations("v1") == [{"id": "v4"}]
    assert calls == [[0.1, 0.2]]


def test_hybrid_without_embedding_uses_keywords(recsys):
    recs = recsys.get_recommendations("v1", limit=2)
    assert len(recs) == 2
    assert recs[0]["id"] == "v2"


def test_personalized_without_history_returns_popular(recsys):
    recs = recsys.get_personalized_recommendations("new-user", limit=2)
    assert [r["id"] for r in recs] == ["v3", "v1"]


def test_personalized_scores_preferences(recsys, dummy_db):
    dummy_db.history["u1"] = ["v1"]
    recs = recsys.get_personalized_recommendations("u1", limit=5)
    assert [r["id"] for r in recs] == ["v2"]


def test_personalized_failure_is_empty(recsys, dummy_db, monkeypatch):
    dummy_db.history["u1"] = ["v1"]

    def boom(*a, **kw):
        raise RuntimeError("down")
    monkeypatch.setattr(dummy_db, "fetch_preferred_videos", boom)
    assert recsys.get_personalized_recommendations("u1") == []


def test_personalized_is_cached_until_history_changes(dummy_db, monkeypatch):
    system = RecommendationSystem(data_access=dummy_db, cache_manager=CacheManager(cache_file=None))
    dummy_db.history["u1"] = ["v1"]
    first = system.get_personalized_recommendations("u1")

    calls = []
    original = dummy_db.fetch_preferred_videos

    def counting(*a, **kw):
        calls.append(1)
        return original(*a, **kw)
    monkeypatch.setattr(dummy_db, "fetch_preferred_videos", counting)

    assert system.get_personalized_recommendations("u1") == first
    assert calls == []

    dummy_db.history["u1"].append("v3")
    system.get_personalized_recommendations("u1")
    assert calls == [1]
