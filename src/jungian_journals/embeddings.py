from typing import Dict, List

from sklearn.feature_extraction.text import HashingVectorizer

from jungian_journals.config import ScoringConfig
from jungian_journals.feature_extraction import ContentFeatureExtractor
from jungian_journals.logger import get_logger

logger = get_logger(__name__)


class ContentEmbedder:
    """
    Fixed-width text embeddings for the `match_videos` pgvector search.

    A hashing vectorizer needs no fitted vocabulary, so vectors computed at
    different times stay comparable and nothing has to be persisted.
    """
    def __init__(self, dim: int = ScoringConfig.EMBEDDING_DIM):
        self.dim = dim
        self.vectorizer = HashingVectorizer(
            n_features=dim,
            alternate_sign=False,
            norm='l2',
            ngram_range=(1, 2),
            stop_words='english',
        )
        self.feature_extractor = ContentFeatureExtractor()

    def embed_text(self, text: str) -> List[float]:
        matrix = self.vectorizer.transform([text or ''])
        return matrix.toarray()[0].tolist()

    def embed(self, item: Dict) -> List[float]:
        return self.embed_text(self.feature_extractor.build_text(item))

    def embed_many(self, items: List[Dict]) -> List[List[float]]:
        if not items:
            return []
        texts = [self.feature_extractor.build_text(i) for i in items]
        logger.debug(f"Embedding {len(texts)} content rows.")
        return self.vectorizer.transform(texts).toarray().tolist()
