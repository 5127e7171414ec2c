import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Video categories offered in the admin editor
CATEGORIES = ['Journals', 'Books', 'Fairy Tales']
CONTENT_KINDS = ('video', 'blog')

# Supabase
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")
VIDEO_TABLE = "video_content"
BLOG_TABLE = "blog_content"
VIEW_HISTORY_TABLE = "user_view_history"
SUBSCRIPTION_TABLE = "subscriptions"
PAYMENT_TABLE = "payments"
IMAGE_BUCKET = os.getenv("IMAGE_BUCKET", "content-images")
MIN_REQUEST_INTERVAL_MS = int(os.getenv("MIN_REQUEST_INTERVAL_MS", "100"))

# Site / payments
SITE_URL = os.getenv("SITE_URL", "http://localhost:3000")
TOSS_CLIENT_KEY = os.getenv("TOSS_CLIENT_KEY", "")
TOSS_SECRET_KEY = os.getenv("TOSS_SECRET_KEY", "")
TOSS_API_URL = os.getenv("TOSS_API_URL", "https://api.tosspayments.com")
PREMIUM_ORDER_NAME = "Jungian Journals Premium"

# Admin dashboard
ADMIN_ID = os.getenv("ADMIN_ID")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")
ADMIN_SESSION_TTL_HOURS = float(os.getenv("ADMIN_SESSION_TTL_HOURS", "168"))

# Recommendation cache
CACHE_FILE = os.getenv("CACHE_FILE", "recommendation_cache.json")
RECOMMENDATION_CACHE_TTL_HOURS = float(os.getenv("RECOMMENDATION_CACHE_TTL_HOURS", "2"))

PLACEHOLDER_THUMBNAIL = "/placeholder.svg"


class ScoringConfig:
    """Weights for related-content and personalized scoring."""
    # Item-to-item
    CATEGORY_MATCH = 30
    KEYWORD_MATCH = 15
    KEYWORD_CAP = 50
    TITLE_WORD_MATCH = 5
    MIN_TITLE_WORD_LENGTH = 3
    RECENT_DAYS = 7
    RECENT_BONUS = 10
    VIEW_LOG_FACTOR = 5
    VIEW_CAP = 20
    CANDIDATE_POOL = 50

    # Personalized
    HISTORY_LIMIT = 10
    TOP_CATEGORIES = 2
    TOP_KEYWORDS = 5
    PREFERRED_CATEGORY_WEIGHT = 30
    PREFERRED_KEYWORD_WEIGHT = 10

    # Embeddings
    EMBEDDING_DIM = 384
