from datetime import datetime, timezone
from typing import List, Dict, Any, Optional

from jungian_journals.caching import CacheManager, hash_history
from jungian_journals.config import ScoringConfig, VIDEO_TABLE
from jungian_journals.database import DatabaseManager
from jungian_journals.feature_extraction import normalize
from jungian_journals.similarity import SimilarityCalculator
from jungian_journals.user_processor.processing import ProfileProcessor
from jungian_journals.logger import get_logger

logger = get_logger(__name__)


class RecommendationSystem:
    """
    Related-video and personalized recommendations.

    Every public method degrades to an empty list on data-access failure.
    """
    def __init__(
        self,
        data_access: DatabaseManager = None,
        cache_manager: CacheManager = None,
        config: ScoringConfig = ScoringConfig
    ):
        self.data_access = data_access or DatabaseManager()
        self.cache_manager = cache_manager or CacheManager()
        self.config = config
        self.similarity_calculator = SimilarityCalculator(config)
        self.profile_processor = ProfileProcessor(config)

    def get_keyword_based_recommendations(
        self,
        current_video_id: str,
        limit: int = 5,
        now: datetime = None
    ) -> List[Dict[str, Any]]:
        try:
            current = self.data_access.fetch_content(VIDEO_TABLE, current_video_id)
        except Exception as e:
            logger.error(f"Error fetching current video {current_video_id}: {e}")
            return []
        if not current:
            logger.error(f"Current video {current_video_id} not found.")
            return []

        try:
            candidates = self.data_access.fetch_candidates(
                VIDEO_TABLE, current_video_id, self.config.CANDIDATE_POOL
            )
        except Exception as e:
            logger.error(f"Error fetching candidate videos: {e}")
            return []

        ranked = self.similarity_calculator.rank(current, candidates, limit, now)
        return [normalize(video) for video in ranked]

    def get_vector_based_recommendations(
        self,
        current_video_id: str,
        embedding: List[float],
        limit: int = 5
    ) -> List[Dict[str, Any]]:
        try:
            matches = self.data_access.match_videos(embedding, limit, current_video_id)
        except Exception as e:
            logger.error(f"Vector search error, falling back to keywords: {e}")
            return self.get_keyword_based_recommendations(current_video_id, limit)
        return matches or []

    def get_recommendations(
        self,
        current_video_id: str,
        embedding: Optional[List[float]] = None,
        limit: int = 5
    ) -> List[Dict[str, Any]]:
        """Vector search when an embedding is available, keyword scoring otherwise."""
        if not embedding:
            embedding = self._stored_embedding(current_video_id)

        if embedding:
            vector_recs = self.get_vector_based_recommendations(current_video_id, embedding, limit)
            if vector_recs:
                return vector_recs

        return self.get_keyword_based_recommendations(current_video_id, limit)

    def _stored_embedding(self, video_id: str) -> Optional[List[float]]:
        try:
            row = self.data_access.fetch_content(VIDEO_TABLE, video_id)
        except Exception as e:
            logger.warning(f"Could not load stored embedding for {video_id}: {e}")
            return None
        embedding = (row or {}).get('embedding')
        # pgvector columns come back as a "[0.1,0.2,...]" string through PostgREST
        if isinstance(embedding, str):
            try:
                embedding = [float(x) for x in embedding.strip('[]').split(',') if x.strip()]
            except ValueError:
                return None
        return embedding or None

    def get_personalized_recommendations(self, user_id: str, limit: int = 5) -> List[Dict[str, Any]]:
        logger.info(f"Generating personalized recommendations for user '{user_id}'...")
        try:
            history = self.data_access.get_view_history(user_id, self.config.HISTORY_LIMIT)
        except Exception as e:
            logger.error(f"Error fetching view history for {user_id}: {e}")
            history = []

        if not history:
            return self._popular(limit)

        history_hash = f"{hash_history(history)}-{limit}"
        cached = self.cache_manager.get(user_id, history_hash)
        if cached is not None:
            logger.info("Cache hit! Returning cached recommendations.")
            return cached

        try:
            viewed = self.data_access.fetch_videos_by_ids(history, 'keywords, category')
            profile = self.profile_processor.build_profile(viewed)

            candidates = self.data_access.fetch_preferred_videos(
                exclude_ids=history,
                categories=profile.top_categories,
                keywords=profile.top_keywords,
                limit=limit * 2,
            )
        except Exception as e:
            logger.error(f"Error in personalized recommendations: {e}")
            return []

        scored = [
            (
                self.similarity_calculator.calculate_personalized_score(
                    video, profile.keyword_counts, profile.category_counts, profile.top_categories
                ),
                video,
            )
            for video in candidates
        ]
        scored = sorted(scored, key=lambda pair: pair[0], reverse=True)
        logger.debug(f"Top personalized scores: {[s for s, _ in scored[:5]]}")

        recs = [normalize(video) for _, video in scored[:limit]]
        self.cache_manager.set(user_id, history_hash, recs, datetime.now(timezone.utc))
        return recs

    def _popular(self, limit: int) -> List[Dict[str, Any]]:
        try:
            popular = self.data_access.fetch_popular_videos(limit)
        except Exception as e:
            logger.error(f"Error fetching popular videos: {e}")
            return []
        return [normalize(video) for video in popular]
