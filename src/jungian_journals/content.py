import os
import re
import uuid
from typing import List, Dict, Any, Optional, Literal

from pydantic import BaseModel, Field

from jungian_journals.config import VIDEO_TABLE, BLOG_TABLE, CONTENT_KINDS
from jungian_journals.database import DatabaseManager
from jungian_journals.embeddings import ContentEmbedder
from jungian_journals.errors import NotFoundError, ValidationError, AccessDeniedError
from jungian_journals.feature_extraction import (
    extract_youtube_id, parse_keywords, normalize, is_premium, get_thumbnail,
)
from jungian_journals.subscription import SubscriptionManager
from jungian_journals.logger import get_logger

logger = get_logger(__name__)

ENGLISH_KEYWORD = re.compile(r'^[a-zA-Z0-9\s\-_]+$')
ALPHABET = [chr(c) for c in range(ord('A'), ord('Z') + 1)]

TABLES = {'video': VIDEO_TABLE, 'blog': BLOG_TABLE}
# fields only subscribers may see on premium items
PREMIUM_FIELDS = ('content', 'youtube_url', 'youtube_id')


class VideoCreate(BaseModel):
    category: Literal['Journals', 'Books', 'Fairy Tales'] = 'Journals'
    title: str
    youtube_url: str
    description: str = ''
    keywords: List[str] = Field(default_factory=list)
    is_premium: bool = False


class BlogCreate(BaseModel):
    title: str
    content: str
    category: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    is_premium: bool = False


def clean_keywords(keywords: List[str]) -> List[str]:
    """Trimmed, non-empty keywords in first-seen order without duplicates."""
    seen = []
    for keyword in keywords:
        keyword = (keyword or '').strip()
        if keyword and keyword not in seen:
            seen.append(keyword)
    return seen


def table_for(kind: str) -> str:
    if kind not in CONTENT_KINDS:
        raise NotFoundError(f"Unknown content type '{kind}'")
    return TABLES[kind]


def keyword_index(items: List[Dict]) -> Dict[str, List[str]]:
    """Distinct English keywords grouped under their upper-cased first letter."""
    unique = []
    for item in items:
        for keyword in parse_keywords(item.get('keywords')):
            if isinstance(keyword, str) and keyword not in unique:
                unique.append(keyword)
    english = sorted(k for k in unique if ENGLISH_KEYWORD.match(k))

    groups = {letter: [] for letter in ALPHABET}
    for keyword in english:
        first = keyword[0].upper()
        if first in groups:
            groups[first].append(keyword)
    return groups


def withhold_premium(item: Dict) -> Dict:
    """Copy of a premium item without its body, video link or video thumbnail."""
    locked = {k: v for k, v in item.items() if k not in PREMIUM_FIELDS and k != 'thumbnail'}
    locked['thumbnail'] = get_thumbnail(locked)
    locked['locked'] = True
    return locked


def filter_content(items: List[Dict], search_term: str = '', keyword: str = None) -> List[Dict]:
    term = (search_term or '').lower()
    results = []
    for item in items:
        keywords = [str(k) for k in parse_keywords(item.get('keywords'))]
        matches_search = (
            not term
            or term in (item.get('title') or '').lower()
            or term in (item.get('summary') or '').lower()
            or any(term in k.lower() for k in keywords)
        )
        matches_keyword = not keyword or keyword in keywords
        if matches_search and matches_keyword:
            results.append(item)
    return results


class ContentManager:
    def __init__(
        self,
        db: DatabaseManager,
        subscriptions: SubscriptionManager = None,
        embedder: ContentEmbedder = None
    ):
        self.db = db
        self.subscriptions = subscriptions or SubscriptionManager(db)
        self.embedder = embedder or ContentEmbedder()

    def list_content(
        self,
        kind: str,
        category: str = None,
        premium: bool = None,
        limit: int = None
    ) -> List[Dict[str, Any]]:
        rows = self.db.list_content(table_for(kind), category=category, premium=premium, limit=limit)
        return [normalize(r) for r in rows]

    def get_content(self, kind: str, content_id: str) -> Dict[str, Any]:
        row = self.db.fetch_content(table_for(kind), content_id)
        if not row:
            raise NotFoundError(f"{kind} {content_id} not found")
        return normalize(row)

    def can_access(self, item: Dict, user_id: Optional[str]) -> bool:
        if not is_premium(item):
            return True
        return self.subscriptions.has_active_subscription(user_id)

    def visible_to(self, items: List[Dict], user_id: Optional[str]) -> List[Dict]:
        """Items as `user_id` may see them; premium bodies withheld from non-subscribers."""
        if not any(is_premium(i) for i in items):
            return items
        if self.subscriptions.has_active_subscription(user_id):
            return items
        return [withhold_premium(i) if is_premium(i) else i for i in items]

    def get_for_viewer(self, kind: str, content_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        item = self.get_content(kind, content_id)
        if not self.can_access(item, user_id):
            raise AccessDeniedError("Premium subscription required")
        return item

    def create_video(self, payload: VideoCreate) -> Dict[str, Any]:
        title = payload.title.strip()
        if not title:
            raise ValidationError("Title is required")
        youtube_id = extract_youtube_id(payload.youtube_url)
        if not youtube_id:
            raise ValidationError(f"Not a YouTube URL: {payload.youtube_url}")

        row = {
            'category': payload.category,
            'title': title,
            'youtube_url': payload.youtube_url,
            'youtube_id': youtube_id,
            'description': payload.description,
            'summary': payload.description,
            'keywords': clean_keywords(payload.keywords),
            'is_premium': payload.is_premium,
            'views': 0,
            'view_count': 0,
        }
        row['embedding'] = self.embedder.embed(row)
        created = self.db.insert_content(VIDEO_TABLE, row)
        logger.info(f"Created video '{title}' ({created.get('id')})")
        return normalize(created)

    def create_blog(
        self,
        payload: BlogCreate,
        image: bytes = None,
        filename: str = None,
        content_type: str = 'image/jpeg'
    ) -> Dict[str, Any]:
        title = payload.title.strip()
        if not title:
            raise ValidationError("Title is required")
        if not payload.content.strip():
            raise ValidationError("Content is required")

        row = {
            'title': title,
            'content': payload.content,
            'category': payload.category,
            'keywords': clean_keywords(payload.keywords),
            'is_premium': payload.is_premium,
            'views': 0,
        }
        if image:
            ext = os.path.splitext(filename or '')[1] or '.jpg'
            row['image_url'] = self.db.upload_image(f"blog/{uuid.uuid4().hex}{ext}", image, content_type)
        row['embedding'] = self.embedder.embed(row)

        created = self.db.insert_content(BLOG_TABLE, row)
        logger.info(f"Created blog post '{title}' ({created.get('id')})")
        return normalize(created)

    def update_content(self, kind: str, content_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        table = table_for(kind)
        changes = dict(changes)
        if 'keywords' in changes:
            changes['keywords'] = clean_keywords(changes['keywords'])
        if 'youtube_url' in changes:
            youtube_id = extract_youtube_id(changes['youtube_url'])
            if not youtube_id:
                raise ValidationError(f"Not a YouTube URL: {changes['youtube_url']}")
            changes['youtube_id'] = youtube_id

        current = self.db.fetch_content(table, content_id)
        if not current:
            raise NotFoundError(f"{kind} {content_id} not found")
        changes['embedding'] = self.embedder.embed({**current, **changes})

        updated = self.db.update_content(table, content_id, changes)
        if not updated:
            raise NotFoundError(f"{kind} {content_id} not found")
        return normalize(updated)

    def delete_content(self, kind: str, content_id: str) -> None:
        if not self.db.delete_content(table_for(kind), content_id):
            raise NotFoundError(f"{kind} {content_id} not found")
        logger.info(f"Deleted {kind} {content_id}")

    def record_view(self, kind: str, content_id: str, user_id: Optional[str] = None) -> int:
        table = table_for(kind)
        views = self.db.increment_views(table, content_id)
        if not views:
            raise NotFoundError(f"{kind} {content_id} not found")
        if user_id and kind == 'video':
            self.db.add_view_history(user_id, content_id)
        return views

    def backfill_embeddings(self, limit: int = 100) -> int:
        """Compute embeddings for rows created before embeddings existed."""
        updated = 0
        for kind in CONTENT_KINDS:
            table = table_for(kind)
            rows = self.db.fetch_content_without_embedding(table, limit)
            for row, embedding in zip(rows, self.embedder.embed_many(rows)):
                self.db.update_content(table, row['id'], {'embedding': embedding})
                updated += 1
        logger.info(f"Backfilled {updated} embeddings.")
        return updated
