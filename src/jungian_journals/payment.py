import base64
import random
import string
import time
from datetime import datetime, timezone
from typing import Dict, List, Any, Optional

import requests

from jungian_journals.config import (
    TOSS_SECRET_KEY, TOSS_API_URL, SITE_URL, PREMIUM_ORDER_NAME,
)
from jungian_journals.database import DatabaseManager
from jungian_journals.errors import PaymentError
from jungian_journals.subscription import SubscriptionManager
from jungian_journals.logger import get_logger

logger = get_logger(__name__)

_BASE36 = string.digits + string.ascii_lowercase

# (minimum amount in KRW, months)
SUBSCRIPTION_TIERS = [
    (90000, 12),
    (50000, 6),
    (25000, 3),
]

PAYMENT_STATUSES = ('completed', 'failed', 'pending', 'refunded')
TOSS_STATUSES = {
    'DONE': 'completed',
    'CANCELED': 'refunded',
    'PARTIAL_CANCELED': 'refunded',
    'ABORTED': 'failed',
    'EXPIRED': 'failed',
}


def generate_order_id() -> str:
    suffix = ''.join(random.choice(_BASE36) for _ in range(9))
    return f"order_{int(time.time() * 1000)}_{suffix}"


def get_subscription_months(amount: int) -> int:
    for minimum, months in SUBSCRIPTION_TIERS:
        if amount >= minimum:
            return months
    return 1


def create_payment_request(
    amount: int,
    order_id: str,
    order_name: str,
    customer_name: str,
    origin: str = SITE_URL
) -> Dict[str, Any]:
    origin = origin.rstrip('/')
    return {
        'amount': amount,
        'orderId': order_id,
        'orderName': order_name,
        'customerName': customer_name,
        'successUrl': f"{origin}/payment/success",
        'failUrl': f"{origin}/payment/fail",
    }


class PaymentManager:
    """Confirms TossPayments checkouts and turns them into subscriptions."""

    def __init__(
        self,
        db: DatabaseManager,
        subscriptions: SubscriptionManager = None,
        secret_key: str = TOSS_SECRET_KEY,
        api_url: str = TOSS_API_URL,
        session: requests.Session = None
    ):
        self.db = db
        self.subscriptions = subscriptions or SubscriptionManager(db)
        self.secret_key = secret_key
        self.api_url = api_url.rstrip('/')
        self.session = session or requests.Session()

    def _auth_header(self) -> str:
        token = base64.b64encode(f"{self.secret_key}:".encode()).decode()
        return f"Basic {token}"

    def confirm_payment(self, payment_key: str, order_id: str, amount: int) -> Dict[str, Any]:
        resp = self.session.post(
            f"{self.api_url}/v1/payments/confirm",
            headers={
                "Authorization": self._auth_header(),
                "Content-Type": "application/json"
            },
            json={
                "paymentKey": payment_key,
                "orderId": order_id,
                "amount": amount
            },
            timeout=30
        )
        if resp.status_code >= 300:
            try:
                body = resp.json()
            except ValueError:
                body = {}
            message = body.get("message") or f"HTTP {resp.status_code}"
            logger.error(f"Payment confirmation failed for {order_id}: {message}")
            raise PaymentError(message, code=body.get("code"))
        return resp.json()

    def complete_payment(
        self,
        user_id: Optional[str],
        payment_key: str,
        order_id: str,
        amount: int
    ) -> Dict[str, Any]:
        if not user_id:
            raise PaymentError("Sign in before confirming a payment.", code="UNAUTHENTICATED")
        if not payment_key or not order_id or not amount:
            raise PaymentError("Payment information is missing.")

        confirmation = self.confirm_payment(payment_key, order_id, amount)
        approved_at = confirmation.get("approvedAt") or datetime.now(timezone.utc).isoformat()
        order_name = confirmation.get("orderName") or PREMIUM_ORDER_NAME

        payment = self.db.insert_payment({
            'user_id': user_id,
            'order_id': order_id,
            'payment_key': payment_key,
            'amount': amount,
            'order_name': order_name,
            'status': confirmation.get("status", "DONE"),
            'approved_at': approved_at,
        }) or {}

        months = get_subscription_months(amount)
        subscription = self.subscriptions.create_subscription(
            user_id, payment.get('id') or payment_key, months
        )
        try:
            self.db.update_user_metadata(user_id, {
                'isPremium': True,
                'subscriptionDate': datetime.now(timezone.utc).isoformat(),
                'paymentKey': payment_key,
                'orderId': order_id,
            })
        except Exception as e:
            # the subscription row is authoritative; metadata is a display hint
            logger.error(f"Error updating premium flag for {user_id}: {e}")

        logger.info(f"Payment {order_id} completed for user {user_id}")
        return {
            'paymentKey': payment_key,
            'orderId': order_id,
            'amount': amount,
            'orderName': order_name,
            'approvedAt': approved_at,
            'subscription': subscription.model_dump(mode='json') if subscription else None,
        }

    def list_payments(self, search: str = '', status: str = 'all') -> Dict[str, Any]:
        """Payments joined with their buyers, filtered, plus revenue totals."""
        payments = self.db.list_payments()
        try:
            users = self.db.list_users()
        except Exception as e:
            logger.error(f"Error listing users for payments page: {e}")
            users = []
        return summarize_payments(payments, users, search, status)


def payment_status(raw: Optional[str]) -> str:
    """Collapse a TossPayments status into completed/failed/pending/refunded."""
    raw = raw or ''
    if raw in PAYMENT_STATUSES:
        return raw
    return TOSS_STATUSES.get(raw.upper(), 'pending')


def summarize_payments(
    payments: List[Dict],
    users: List[Dict],
    search: str = '',
    status: str = 'all'
) -> Dict[str, Any]:
    by_id = {u['id']: u for u in users}
    rows = []
    for p in payments:
        user = by_id.get(p.get('user_id')) or {}
        meta = user.get('user_metadata') or {}
        rows.append({
            'id': p.get('id'),
            'orderId': p.get('order_id') or '',
            'orderName': p.get('order_name'),
            'amount': p.get('amount') or 0,
            'status': payment_status(p.get('status')),
            'approvedAt': p.get('approved_at'),
            'userId': p.get('user_id'),
            'userEmail': user.get('email') or '',
            'userName': meta.get('full_name') or meta.get('name') or '',
        })

    term = (search or '').lower()
    filtered = [
        r for r in rows
        if (not term
            or term in r['orderId'].lower()
            or term in r['userEmail'].lower()
            or term in r['userName'].lower())
        and (status in (None, '', 'all') or r['status'] == status)
    ]

    completed = [r for r in rows if r['status'] == 'completed']
    return {
        'payments': filtered,
        'stats': {
            'totalRevenue': sum(r['amount'] for r in completed),
            'completed': len(completed),
            'failed': sum(1 for r in rows if r['status'] == 'failed'),
            'pending': sum(1 for r in rows if r['status'] == 'pending'),
            'refunded': sum(1 for r in rows if r['status'] == 'refunded'),
        },
    }
