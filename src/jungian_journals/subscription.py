from datetime import datetime, timezone
from typing import Optional, Dict, Literal

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel

from jungian_journals.database import DatabaseManager
from jungian_journals.feature_extraction import parse_timestamp
from jungian_journals.logger import get_logger

logger = get_logger(__name__)

SubscriptionStatus = Literal['active', 'canceled', 'expired', 'none']


class Subscription(BaseModel):
    id: str
    user_id: str
    status: SubscriptionStatus
    start_date: datetime
    end_date: datetime
    payment_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict) -> "Subscription":
        return cls(
            id=str(row['id']),
            user_id=row['user_id'],
            status=row.get('status') or 'none',
            start_date=parse_timestamp(row['start_date']),
            end_date=parse_timestamp(row['end_date']),
            payment_id=row.get('payment_id'),
        )


def is_subscription_active(subscription: Optional[Subscription], now: datetime = None) -> bool:
    if subscription is None:
        return False
    now = now or datetime.now(timezone.utc)
    return subscription.status == 'active' and subscription.end_date > now


class SubscriptionManager:
    def __init__(self, db: DatabaseManager):
        self.db = db

    def get_user_subscription(self, user_id: str) -> Optional[Subscription]:
        """Most recently created subscription for the user, if any."""
        try:
            row = self.db.fetch_latest_subscription(user_id)
        except Exception as e:
            logger.error(f"Error fetching subscription for {user_id}: {e}")
            return None
        return Subscription.from_row(row) if row else None

    def has_active_subscription(self, user_id: Optional[str]) -> bool:
        if not user_id:
            return False
        return is_subscription_active(self.get_user_subscription(user_id))

    def create_subscription(
        self,
        user_id: str,
        payment_id: str,
        months: int = 1,
        now: datetime = None
    ) -> Optional[Subscription]:
        start_date = now or datetime.now(timezone.utc)
        end_date = start_date + relativedelta(months=months)
        row = self.db.insert_subscription({
            'user_id': user_id,
            'status': 'active',
            'start_date': start_date.isoformat(),
            'end_date': end_date.isoformat(),
            'payment_id': payment_id,
        })
        if not row:
            logger.error(f"Subscription insert returned nothing for user {user_id}")
            return None
        logger.info(f"Created {months}-month subscription for user {user_id}")
        return Subscription.from_row(row)

    def cancel_subscription(self, subscription_id: str) -> bool:
        try:
            return self.db.update_subscription_status(subscription_id, 'canceled')
        except Exception as e:
            logger.error(f"Error canceling subscription {subscription_id}: {e}")
            return False

    def expire_subscriptions(self, now: datetime = None) -> int:
        now = now or datetime.now(timezone.utc)
        expired = self.db.expire_subscriptions(now.isoformat())
        logger.info(f"Marked {expired} subscriptions as expired.")
        return expired
