import pytest
from datetime import datetime, timedelta, timezone

from jungian_journals.caching import CacheManager
from jungian_journals.recommendation_engine import RecommendationSystem

NOW = datetime(2024, 5, 20, 12, 0, tzinfo=timezone.utc)


def days_ago(n):
    return (NOW - timedelta(days=n)).isoformat()


class DummyDB:
    """In-memory stand-in for DatabaseManager."""
    def __init__(self):
        self.tables = {
            "video_content": [
                {"id": "v1", "title": "Shadow Work in Fairy Tales", "category": "Fairy Tales",
                 "keywords": ["shadow", "jung", "myth"], "view_count": 10, "views": 10,
                 "created_at": days_ago(30), "youtube_id": "abcdefghijk"},
                {"id": "v2", "title": "The Shadow and the Persona", "category": "Fairy Tales",
                 "keywords": '["Shadow", "persona"]', "view_count": 0, "views": 0,
                 "created_at": days_ago(2), "youtube_url": "https://youtu.be/AAAAAAAAAAA"},
                {"id": "v3", "title": "Red Book Journals", "category": "Journals",
                 "keywords": ["active imagination"], "view_count": 500, "views": 500,
                 "created_at": days_ago(60)},
                {"id": "v4", "title": "Anima Archetypes", "tab": "Books",
                 "keywords": "not json", "created_at": days_ago(100)},
            ],
            "blog_content": [
                {"id": "b1", "title": "Dreams", "content": "<p>Dream <b>work</b></p>",
                 "keywords": ["dreams"], "is_premium": True, "views": 4, "created_at": days_ago(1)},
            ],
        }
        self.history = {}
        self.subscriptions = []
        self.payments = []
        self.metadata = {}
        self.users = []

    def _table(self, name):
        return self.tables[name]

    def fetch_content(self, table, content_id):
        return next((dict(r) for r in self._table(table) if r["id"] == content_id), None)

    def fetch_candidates(self, table, exclude_id, limit=50):
        return [dict(r) for r in self._table(table) if r["id"] != exclude_id][:limit]

    def fetch_popular_videos(self, limit=5):
        rows = sorted(self._table("video_content"), key=lambda r: r.get("view_count") or 0, reverse=True)
        return [dict(r) for r in rows[:limit]]

    def fetch_videos_by_ids(self, ids, columns="keywords, category"):
        return [
            {"keywords": r.get("keywords"), "category": r.get("category")}
            for r in self._table("video_content") if r["id"] in ids
        ]

    def fetch_preferred_videos(self, exclude_ids, categories, keywords, limit):
        from jungian_journals.feature_extraction import parse_keywords
        out = []
        for r in self._table("video_content"):
            if r["id"] in exclude_ids:
                continue
            kws = parse_keywords(r.get("keywords"))
            if r.get("category") in categories or all(k in kws for k in keywords):
                out.append(dict(r))
        return out[:limit]

    def match_videos(self, embedding, match_count, current_video_id):
        return []

    def list_content(self, table, category=None, premium=None, limit=None):
        rows = [dict(r) for r in self._table(table)
                if (not category or r.get("category") == category)
                and (premium is None or bool(r.get("is_premium")) == premium)]
        rows.sort(key=lambda r: r.get("created_at") or "", reverse=True)
        return rows[:limit] if limit else rows

    def insert_content(self, table, row):
        row = {"id": f"new{len(self._table(table)) + 1}", "created_at": NOW.isoformat(), **row}
        self._table(table).append(row)
        return dict(row)

    def update_content(self, table, content_id, changes):
        for r in self._table(table):
            if r["id"] == content_id:
                r.update(changes)
                return dict(r)
        return None

    def delete_content(self, table, content_id):
        before = len(self._table(table))
        self.tables[table] = [r for r in self._table(table) if r["id"] != content_id]
        return len(self._table(table)) < before

    def fetch_content_without_embedding(self, table, limit=100):
        return [dict(r) for r in self._table(table) if not r.get("embedding")][:limit]

    def increment_views(self, table, content_id):
        for r in self._table(table):
            if r["id"] == content_id:
                r["views"] = (r.get("views") or 0) + 1
                return r["views"]
        return 0

    def upload_image(self, path, data, content_type):
        return f"https://cdn.example/{path}"

    def get_view_history(self, user_id, limit=10):
        return list(reversed(self.history.get(user_id, [])))[:limit]

    def add_view_history(self, user_id, video_id):
        self.history.setdefault(user_id, []).append(video_id)

    def fetch_latest_subscription(self, user_id):
        rows = [s for s in self.subscriptions if s["user_id"] == user_id]
        return rows[-1] if rows else None

    def insert_subscription(self, row):
        row = {"id": f"s{len(self.subscriptions) + 1}", **row}
        self.subscriptions.append(row)
        return dict(row)

    def update_subscription_status(self, subscription_id, status):
        for s in self.subscriptions:
            if s["id"] == subscription_id:
                s["status"] = status
                return True
        return False

    def expire_subscriptions(self, now_iso):
        count = 0
        for s in self.subscriptions:
            if s["status"] == "active" and s["end_date"] < now_iso:
                s["status"] = "expired"
                count += 1
        return count

    def insert_payment(self, row):
        row = {"id": f"p{len(self.payments) + 1}", **row}
        self.payments.append(row)
        return dict(row)

    def list_payments(self):
        return list(reversed(self.payments))

    def update_user_metadata(self, user_id, metadata):
        self.metadata[user_id] = metadata

    def list_users(self):
        return list(self.users)

    def exchange_code_for_session(self, code):
        return {"code": code}

    def get_user_id_from_token(self, token):
        return {"good-token": "user-1"}.get(token)


@pytest.fixture
def dummy_db():
    return DummyDB()


@pytest.fixture
def recsys(dummy_db):
    return RecommendationSystem(data_access=dummy_db, cache_manager=CacheManager(cache_file=None))


@pytest.fixture
def now():
    return NOW
