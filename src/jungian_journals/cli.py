import argparse

from dotenv import load_dotenv

from jungian_journals.content import ContentManager
from jungian_journals.database import DatabaseManager
from jungian_journals.subscription import SubscriptionManager
from jungian_journals.logger import get_logger

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Jungian Journals maintenance jobs")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("expire-subscriptions", help="Mark lapsed active subscriptions as expired")

    backfill = sub.add_parser("backfill-embeddings", help="Embed content rows that have no embedding")
    backfill.add_argument("--limit", type=int, default=100, help="Maximum rows per content table")
    return parser


def main(argv=None, db: DatabaseManager = None) -> int:
    """Command-line interface for scheduled maintenance."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        db = db or DatabaseManager()
    except ValueError as e:
        logger.error(str(e))
        return 1

    subscriptions = SubscriptionManager(db)
    if args.command == "expire-subscriptions":
        count = subscriptions.expire_subscriptions()
        logger.info(f"Expired {count} subscriptions.")
    elif args.command == "backfill-embeddings":
        count = ContentManager(db, subscriptions).backfill_embeddings(args.limit)
        logger.info(f"Embedded {count} content rows.")
    return 0


if __name__ == "__main__":
    exit(main())
