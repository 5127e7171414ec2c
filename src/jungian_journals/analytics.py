import math
from datetime import datetime, timedelta, timezone
from typing import List, Dict, Any, Optional

from jungian_journals.config import VIDEO_TABLE, BLOG_TABLE
from jungian_journals.database import DatabaseManager
from jungian_journals.feature_extraction import parse_timestamp
from jungian_journals.logger import get_logger

logger = get_logger(__name__)

TITLE_PREVIEW = 30
TOP_CONTENT = 10
RECENT_ACTIVITIES = 5


def time_ago(value, now: datetime = None) -> str:
    ts = parse_timestamp(value)
    if ts is None:
        return 'no activity'
    now = now or datetime.now(timezone.utc)
    seconds = int((now - ts).total_seconds())

    if seconds < 60:
        return 'just now'
    if seconds < 3600:
        return f"{seconds // 60} minutes ago"
    if seconds < 86400:
        return f"{seconds // 3600} hours ago"
    if seconds < 604800:
        return f"{seconds // 86400} days ago"
    return ts.date().isoformat()


def period_days(period: str) -> int:
    return {'7days': 7, '30days': 30}.get(period, 90)


def truncate_title(title: str, length: int = TITLE_PREVIEW) -> str:
    title = title or ''
    return title[:length] + ('...' if len(title) > length else '')


def user_stats(users: List[Dict], now: datetime = None) -> Dict[str, Any]:
    """Headline numbers for the users page."""
    now = now or datetime.now(timezone.utc)
    week_ago = now - timedelta(days=7)

    def _premium(u):
        return bool(u.get('is_premium') or (u.get('user_metadata') or {}).get('isPremium'))

    active_today = 0
    new_this_week = 0
    for u in users:
        last_sign_in = parse_timestamp(u.get('last_sign_in_at'))
        if last_sign_in and last_sign_in.date() == now.date():
            active_today += 1
        created = parse_timestamp(u.get('created_at'))
        if created and created >= week_ago:
            new_this_week += 1

    total_views = sum(u.get('total_views') or 0 for u in users)
    return {
        'totalUsers': len(users),
        'premiumUsers': sum(1 for u in users if _premium(u)),
        'activeToday': active_today,
        'newThisWeek': new_this_week,
        'avgViews': round(total_views / len(users)) if users else 0,
    }


class AnalyticsService:
    def __init__(self, db: DatabaseManager):
        self.db = db

    def _content(self):
        videos = self.db.list_content(VIDEO_TABLE)
        blogs = self.db.list_content(BLOG_TABLE)
        return videos, blogs

    def dashboard(self, period: str = '7days', now: datetime = None) -> Dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        days = period_days(period)
        videos, blogs = self._content()
        users = self.db.list_users()

        video_views = sum(v.get('views') or 0 for v in videos)
        blog_views = sum(b.get('views') or 0 for b in blogs)

        dates = [(now - timedelta(days=i)).date() for i in range(days - 1, -1, -1)]

        created = [parse_timestamp(c.get('created_at')) for c in videos + blogs]
        created_days = [ts.date() for ts in created if ts]
        published = [
            {'date': day.isoformat(), 'published': created_days.count(day)}
            for day in dates
        ]

        return {
            'period': period,
            'totalVideos': len(videos),
            'totalBlogs': len(blogs),
            'totalUsers': len(users),
            'totalViews': video_views + blog_views,
            'viewsByContent': self.top_content(videos, blogs),
            'publishedByDate': published,
            'userGrowth': self.user_growth(users, dates),
            'recentActivities': self.recent_activities(videos, blogs, users, now),
        }

    @staticmethod
    def top_content(videos: List[Dict], blogs: List[Dict], limit: int = TOP_CONTENT) -> List[Dict]:
        rows = [
            {'title': truncate_title(c.get('title')), 'views': c.get('views') or 0, 'type': kind}
            for kind, items in (('video', videos), ('blog', blogs))
            for c in items
        ]
        rows = sorted(rows, key=lambda r: r['views'], reverse=True)
        return rows[:limit]

    @staticmethod
    def user_growth(users: List[Dict], dates: List) -> List[Dict]:
        """Cumulative sign-ups, sampled about seven times over the period."""
        by_date: Dict[str, int] = {}
        for u in users:
            created = parse_timestamp(u.get('created_at'))
            if created:
                key = created.date().isoformat()
                by_date[key] = by_date.get(key, 0) + 1

        days = len(dates)
        step = math.ceil(days / 7) if days else 1
        growth = []
        cumulative = 0
        for idx, day in enumerate(dates):
            remaining = days - 1 - idx
            cumulative += by_date.get(day.isoformat(), 0)
            if remaining % step == 0 or remaining == 0:
                growth.append({'date': day.isoformat(), 'users': cumulative})
        return growth

    @staticmethod
    def recent_activities(
        videos: List[Dict],
        blogs: List[Dict],
        users: List[Dict],
        now: datetime,
        limit: int = RECENT_ACTIVITIES
    ) -> List[Dict]:
        events = []
        for v in videos[:2]:
            events.append((v.get('created_at'), f'New video "{truncate_title(v.get("title"))}" added'))
        for b in blogs[:2]:
            events.append((b.get('created_at'), f'New blog "{truncate_title(b.get("title"))}" published'))
        for u in users[:2]:
            name = (u.get('email') or '').split('@')[0]
            events.append((u.get('created_at'), f"New user signed up: {name}***"))

        oldest = datetime.min.replace(tzinfo=timezone.utc)
        events.sort(key=lambda e: parse_timestamp(e[0]) or oldest, reverse=True)
        return [{'description': desc, 'time': time_ago(ts, now)} for ts, desc in events[:limit]]

    def users_overview(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Users with their share of content views, plus headline stats."""
        users = self.db.list_users()
        videos, blogs = self._content()
        total_views = sum(c.get('views') or 0 for c in videos + blogs)
        per_user = total_views // max(len(users), 1)

        rows = []
        for u in users:
            meta = u.get('user_metadata') or {}
            rows.append({
                'id': u['id'],
                'email': u.get('email', ''),
                'full_name': meta.get('full_name') or meta.get('name'),
                'avatar_url': meta.get('avatar_url') or meta.get('picture'),
                'created_at': u.get('created_at'),
                'last_sign_in_at': u.get('last_sign_in_at'),
                'is_premium': bool(meta.get('isPremium')),
                'total_views': per_user,
            })
        return {'users': rows, 'stats': user_stats(rows, now)}
