'''
Builds a viewer's taste profile from the videos they watched most recently:
how often each keyword and each category appears, and the leaders of both.
'''

from typing import Dict, List

from jungian_journals.config import ScoringConfig
from jungian_journals.feature_extraction import parse_keywords


class ViewingProfile:
    def __init__(self, keyword_counts: Dict[str, int], category_counts: Dict[str, int],
                 top_categories: List[str], top_keywords: List[str]):
        self.keyword_counts = keyword_counts
        self.category_counts = category_counts
        self.top_categories = top_categories
        self.top_keywords = top_keywords

    def is_empty(self) -> bool:
        return not self.keyword_counts and not self.category_counts

    def to_dict(self) -> Dict:
        return {
            'keyword_counts': self.keyword_counts,
            'category_counts': self.category_counts,
            'top_categories': self.top_categories,
            'top_keywords': self.top_keywords,
        }


class ProfileProcessor:
    """Aggregates keyword and category frequencies over viewed videos."""

    def __init__(self, config: ScoringConfig = ScoringConfig):
        self.config = config

    def build_profile(self, viewed_videos: List[Dict]) -> ViewingProfile:
        keyword_counts: Dict[str, int] = {}
        category_counts: Dict[str, int] = {}

        for video in viewed_videos:
            for keyword in parse_keywords(video.get('keywords')):
                key = str(keyword).lower()
                keyword_counts[key] = keyword_counts.get(key, 0) + 1
            category = video.get('category')
            if category:
                category_counts[category] = category_counts.get(category, 0) + 1

        return ViewingProfile(
            keyword_counts,
            category_counts,
            self._top(category_counts, self.config.TOP_CATEGORIES),
            self._top(keyword_counts, self.config.TOP_KEYWORDS),
        )

    @staticmethod
    def _top(counts: Dict[str, int], n: int) -> List[str]:
        # stable: ties keep first-seen order
        ranked = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
        return [name for name, _ in ranked[:n]]
