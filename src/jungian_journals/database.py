import time
from datetime import datetime, timedelta, timezone
from typing import List, Dict, Any, Optional

from supabase import create_client, Client

from jungian_journals.config import (
    SUPABASE_URL, SUPABASE_KEY, VIDEO_TABLE, VIEW_HISTORY_TABLE,
    SUBSCRIPTION_TABLE, PAYMENT_TABLE, IMAGE_BUCKET, MIN_REQUEST_INTERVAL_MS,
)
from jungian_journals.logger import get_logger

logger = get_logger(__name__)


def rate_limited(fn):
    def wrapper(self, *a, **k):
        self._rate_limit()
        return fn(self, *a, **k)
    wrapper.__name__ = fn.__name__
    wrapper.__doc__ = fn.__doc__
    return wrapper


def _iso(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class DatabaseManager:
    """Thin wrapper over the Supabase client for every table the site uses."""

    def __init__(self, client: Client = None, min_request_interval_ms: int = MIN_REQUEST_INTERVAL_MS):
        if client is None:
            if not SUPABASE_URL or not SUPABASE_KEY:
                raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set in .env file")
            client = create_client(SUPABASE_URL, SUPABASE_KEY)
        self.client = client
        self.last_request_time = datetime.min.replace(tzinfo=timezone.utc)
        self.min_request_interval = timedelta(milliseconds=min_request_interval_ms)

    def _rate_limit(self):
        now = datetime.now(timezone.utc)
        elapsed = now - self.last_request_time
        if elapsed < self.min_request_interval:
            time.sleep((self.min_request_interval - elapsed).total_seconds())
        self.last_request_time = datetime.now(timezone.utc)

    # Content operations
    @rate_limited
    def fetch_content(self, table: str, content_id: str) -> Optional[Dict[str, Any]]:
        res = self.client.table(table)\
            .select('*')\
            .eq('id', content_id)\
            .maybe_single()\
            .execute()
        return res.data if res is not None else None

    @rate_limited
    def fetch_candidates(self, table: str, exclude_id: str, limit: int = 50) -> List[Dict]:
        res = self.client.table(table)\
            .select('*')\
            .neq('id', exclude_id)\
            .limit(limit)\
            .execute()
        return res.data or []

    @rate_limited
    def fetch_popular_videos(self, limit: int = 5) -> List[Dict]:
        res = self.client.table(VIDEO_TABLE)\
            .select('*')\
            .order('view_count', desc=True)\
            .limit(limit)\
            .execute()
        return res.data or []

    @rate_limited
    def fetch_videos_by_ids(self, video_ids: List[str], columns: str = 'keywords, category') -> List[Dict]:
        if not video_ids:
            return []
        res = self.client.table(VIDEO_TABLE)\
            .select(columns)\
            .in_('id', video_ids)\
            .execute()
        return res.data or []

    @rate_limited
    def fetch_preferred_videos(
        self,
        exclude_ids: List[str],
        categories: List[str],
        keywords: List[str],
        limit: int
    ) -> List[Dict]:
        """Unseen videos in one of `categories` or tagged with `keywords`."""
        filters = []
        if categories:
            filters.append(f"category.in.({','.join(categories)})")
        if keywords:
            filters.append(f"keywords.cs.{{{','.join(keywords)}}}")

        query = self.client.table(VIDEO_TABLE).select('*')
        if exclude_ids:
            query = query.not_.in_('id', exclude_ids)
        if filters:
            query = query.or_(','.join(filters))
        res = query.limit(limit).execute()
        return res.data or []

    @rate_limited
    def match_videos(self, embedding: List[float], match_count: int, current_video_id: str) -> List[Dict]:
        res = self.client.rpc(
            'match_videos',
            {
                'query_embedding': embedding,
                'match_count': match_count,
                'current_video_id': current_video_id
            }
        ).execute()
        return res.data or []

    @rate_limited
    def list_content(
        self,
        table: str,
        category: str = None,
        premium: bool = None,
        limit: int = None
    ) -> List[Dict]:
        query = self.client.table(table).select('*')
        if category:
            query = query.eq('category', category)
        if premium is not None:
            query = query.eq('is_premium', premium)
        query = query.order('created_at', desc=True)
        if limit:
            query = query.limit(limit)
        return query.execute().data or []

    @rate_limited
    def insert_content(self, table: str, row: Dict) -> Dict:
        res = self.client.table(table).insert(row).execute()
        return res.data[0] if res.data else {}

    @rate_limited
    def update_content(self, table: str, content_id: str, changes: Dict) -> Optional[Dict]:
        res = self.client.table(table)\
            .update(changes)\
            .eq('id', content_id)\
            .execute()
        return res.data[0] if res.data else None

    @rate_limited
    def delete_content(self, table: str, content_id: str) -> bool:
        res = self.client.table(table)\
            .delete()\
            .eq('id', content_id)\
            .execute()
        return len(res.data or []) > 0

    @rate_limited
    def fetch_content_without_embedding(self, table: str, limit: int = 100) -> List[Dict]:
        res = self.client.table(table)\
            .select('*')\
            .is_('embedding', 'null')\
            .limit(limit)\
            .execute()
        return res.data or []

    def increment_views(self, table: str, content_id: str) -> int:
        """Read-modify-write bump of `views` (and `view_count` on videos)."""
        row = self.fetch_content(table, content_id)
        if not row:
            return 0
        views = (row.get('views') or 0) + 1
        changes = {'views': views}
        if table == VIDEO_TABLE:
            changes['view_count'] = (row.get('view_count') or 0) + 1
        self.update_content(table, content_id, changes)
        return views

    @rate_limited
    def upload_image(self, path: str, data: bytes, content_type: str) -> str:
        bucket = self.client.storage.from_(IMAGE_BUCKET)
        bucket.upload(path, data, {'content-type': content_type})
        return bucket.get_public_url(path)

    # View history
    @rate_limited
    def get_view_history(self, user_id: str, limit: int = 10) -> List[str]:
        res = self.client.table(VIEW_HISTORY_TABLE)\
            .select('video_id')\
            .eq('user_id', user_id)\
            .order('viewed_at', desc=True)\
            .limit(limit)\
            .execute()
        return [item['video_id'] for item in (res.data or [])]

    @rate_limited
    def add_view_history(self, user_id: str, video_id: str) -> None:
        self.client.table(VIEW_HISTORY_TABLE).insert({
            'user_id': user_id,
            'video_id': video_id,
            'viewed_at': datetime.now(timezone.utc).isoformat()
        }).execute()

    # Subscriptions
    @rate_limited
    def fetch_latest_subscription(self, user_id: str) -> Optional[Dict]:
        res = self.client.table(SUBSCRIPTION_TABLE)\
            .select('*')\
            .eq('user_id', user_id)\
            .order('created_at', desc=True)\
            .limit(1)\
            .execute()
        return res.data[0] if res.data else None

    @rate_limited
    def insert_subscription(self, row: Dict) -> Optional[Dict]:
        res = self.client.table(SUBSCRIPTION_TABLE).insert(row).execute()
        return res.data[0] if res.data else None

    @rate_limited
    def update_subscription_status(self, subscription_id: str, status: str) -> bool:
        res = self.client.table(SUBSCRIPTION_TABLE)\
            .update({'status': status})\
            .eq('id', subscription_id)\
            .execute()
        return len(res.data or []) > 0

    @rate_limited
    def expire_subscriptions(self, now_iso: str) -> int:
        res = self.client.table(SUBSCRIPTION_TABLE)\
            .update({'status': 'expired'})\
            .eq('status', 'active')\
            .lt('end_date', now_iso)\
            .execute()
        return len(res.data or [])

    # Payments
    @rate_limited
    def insert_payment(self, row: Dict) -> Optional[Dict]:
        res = self.client.table(PAYMENT_TABLE).insert(row).execute()
        return res.data[0] if res.data else None

    @rate_limited
    def list_payments(self) -> List[Dict]:
        res = self.client.table(PAYMENT_TABLE)\
            .select('*')\
            .order('approved_at', desc=True)\
            .execute()
        return res.data or []

    # Auth users
    @rate_limited
    def update_user_metadata(self, user_id: str, metadata: Dict) -> None:
        self.client.auth.admin.update_user_by_id(user_id, {'user_metadata': metadata})

    @rate_limited
    def list_users(self) -> List[Dict]:
        users = self.client.auth.admin.list_users() or []
        return [
            {
                'id': u.id,
                'email': u.email or '',
                'created_at': _iso(u.created_at),
                'last_sign_in_at': _iso(u.last_sign_in_at),
                'user_metadata': u.user_metadata or {},
            }
            for u in users
        ]

    def exchange_code_for_session(self, code: str):
        return self.client.auth.exchange_code_for_session({'auth_code': code})

    def get_user_id_from_token(self, access_token: str) -> Optional[str]:
        res = self.client.auth.get_user(access_token)
        user = getattr(res, 'user', None)
        return user.id if user else None
