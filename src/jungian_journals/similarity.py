import math
from datetime import datetime, timezone
from typing import Dict, List, Any

from jungian_journals.config import ScoringConfig
from jungian_journals.feature_extraction import ContentFeatureExtractor, parse_keywords
from jungian_journals.logger import get_logger

logger = get_logger(__name__)


class SimilarityCalculator:
    """
    Heuristic related-content scoring. Each signal adds a fixed number of
    points; only the resulting order is meaningful.
    """
    def __init__(self, config: ScoringConfig = ScoringConfig, feature_extractor: ContentFeatureExtractor = None):
        self.config = config
        self.feature_extractor = feature_extractor or ContentFeatureExtractor()

    def calculate_recommendation_score(
        self,
        current: Dict[str, Any],
        candidate: Dict[str, Any],
        now: datetime = None
    ) -> float:
        now = now or datetime.now(timezone.utc)
        cur = self.feature_extractor.extract_features(current)
        cand = self.feature_extractor.extract_features(candidate)
        score = 0.0

        if cur['category'] and cand['category'] and cur['category'] == cand['category']:
            score += self.config.CATEGORY_MATCH

        shared_keywords = len(cur['keywords'] & cand['keywords'])
        score += min(shared_keywords * self.config.KEYWORD_MATCH, self.config.KEYWORD_CAP)

        shared_words = len(cur['title_words'] & cand['title_words'])
        score += shared_words * self.config.TITLE_WORD_MATCH

        created_at = cand['created_at']
        if created_at is not None:
            days = math.floor((now - created_at).total_seconds() / 86400)
            if days <= self.config.RECENT_DAYS:
                score += self.config.RECENT_BONUS

        if cand['view_count']:
            score += min(math.log(cand['view_count'] + 1) * self.config.VIEW_LOG_FACTOR, self.config.VIEW_CAP)

        return score

    def rank(
        self,
        current: Dict[str, Any],
        candidates: List[Dict[str, Any]],
        limit: int,
        now: datetime = None
    ) -> List[Dict[str, Any]]:
        """Candidates ordered by score, best first, truncated to `limit`."""
        now = now or datetime.now(timezone.utc)
        scored = [
            (self.calculate_recommendation_score(current, c, now), c)
            for c in candidates
        ]
        logger.debug(f"Scored {len(scored)} candidates against '{current.get('id')}'.")
        # sorted() is stable so equal scores keep fetch order
        scored = sorted(scored, key=lambda pair: pair[0], reverse=True)
        return [c for _, c in scored[:limit]]

    def calculate_personalized_score(
        self,
        candidate: Dict[str, Any],
        keyword_counts: Dict[str, int],
        category_counts: Dict[str, int],
        top_categories: List[str]
    ) -> float:
        score = 0.0
        category = candidate.get('category')
        if category in top_categories:
            score += self.config.PREFERRED_CATEGORY_WEIGHT * category_counts.get(category, 0)

        for keyword in parse_keywords(candidate.get('keywords')):
            count = keyword_counts.get(str(keyword).lower())
            if count:
                score += self.config.PREFERRED_KEYWORD_WEIGHT * count
        return score
