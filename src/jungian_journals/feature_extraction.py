import json
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set, Any

from bs4 import BeautifulSoup
from dateutil.parser import parse

from jungian_journals.config import PLACEHOLDER_THUMBNAIL, ScoringConfig

YOUTUBE_ID_PATTERN = re.compile(
    r'^.*((youtu.be/)|(v/)|(/u/\w/)|(embed/)|(watch\?))\??v?=?([^#&?]*).*'
)
YOUTUBE_THUMBNAIL = "https://img.youtube.com/vi/{}/maxresdefault.jpg"


def parse_keywords(keywords) -> List[str]:
    """Keywords are stored either as an array or as a JSON-encoded string."""
    if isinstance(keywords, list):
        return keywords
    if not isinstance(keywords, str):
        return []
    try:
        decoded = json.loads(keywords)
    except ValueError:
        return []
    return decoded if isinstance(decoded, list) else []


def extract_youtube_id(url: str) -> str:
    if not url:
        return ''
    match = YOUTUBE_ID_PATTERN.match(url)
    if match and len(match.group(7)) == 11:
        return match.group(7)
    return ''


def get_thumbnail(item: Dict) -> str:
    # uploaded image wins
    if item.get('image_url'):
        return item['image_url']

    if item.get('youtube_url'):
        youtube_id = extract_youtube_id(item['youtube_url'])
        if youtube_id:
            return YOUTUBE_THUMBNAIL.format(youtube_id)

    youtube_id = item.get('youtube_id') or item.get('youtubeId')
    if youtube_id:
        return YOUTUBE_THUMBNAIL.format(youtube_id)

    return item.get('thumbnail') or PLACEHOLDER_THUMBNAIL


def get_category(item: Dict) -> Optional[str]:
    return item.get('category') or item.get('tab')


def is_premium(item: Dict) -> bool:
    return bool(item.get('is_premium') or item.get('isPremium'))


def parse_timestamp(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = parse(value)
        except (ValueError, OverflowError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def get_created_at(item: Dict) -> Optional[datetime]:
    return parse_timestamp(
        item.get('created_at') or item.get('added_date') or item.get('addedDate')
    )


def title_words(title: str) -> Set[str]:
    return {
        word for word in (title or '').lower().split()
        if len(word) >= ScoringConfig.MIN_TITLE_WORD_LENGTH
    }


def strip_html(html: str) -> str:
    if not html:
        return ''
    return BeautifulSoup(html, 'html.parser').get_text(' ', strip=True)


def normalize(item: Dict) -> Dict:
    """Copy of a content row with keywords decoded and thumbnail resolved."""
    return {
        **item,
        'keywords': parse_keywords(item.get('keywords')),
        'thumbnail': get_thumbnail(item),
    }


class ContentFeatureExtractor:
    def extract_features(self, item: Dict) -> Dict[str, Any]:
        """
        Collect the fields the scorers compare from a raw content row.

        Args:
            item: Row from video_content or blog_content

        Returns:
            Dictionary with category, lower-cased keyword set, title words,
            creation time and view count
        """
        return {
            'category': get_category(item),
            'keywords': {str(k).lower() for k in parse_keywords(item.get('keywords'))},
            'title_words': title_words(item.get('title', '')),
            'created_at': get_created_at(item),
            'view_count': item.get('view_count') or 0,
        }

    def build_text(self, item: Dict) -> str:
        """Plain-text rendering of a row for hashing into an embedding."""
        parts = [
            item.get('title') or '',
            item.get('description') or '',
            item.get('summary') or '',
            strip_html(item.get('content') or ''),
            ' '.join(str(k) for k in parse_keywords(item.get('keywords'))),
        ]
        return ' '.join(p for p in parts if p)
