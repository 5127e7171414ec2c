# src/jungian_journals/main.py

import asyncio
import base64
import binascii
from typing import List, Optional, Dict, Any

from fastapi import FastAPI, HTTPException, Depends, Header, Query
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from jungian_journals.analytics import AnalyticsService
from jungian_journals.auth import AdminAuth, exchange_code_for_session
from jungian_journals.config import SITE_URL, PREMIUM_ORDER_NAME
from jungian_journals.content import ContentManager, VideoCreate, BlogCreate, keyword_index, filter_content
from jungian_journals.database import DatabaseManager
from jungian_journals.errors import NotFoundError, ValidationError, AccessDeniedError, PaymentError
from jungian_journals.payment import PaymentManager, generate_order_id, create_payment_request
from jungian_journals.recommendation_engine import RecommendationSystem
from jungian_journals.subscription import SubscriptionManager, is_subscription_active

from jungian_journals.logger import get_logger

logger = get_logger(__name__)

app = FastAPI(title="Jungian Journals")
scheduler = AsyncIOScheduler()


class Services:
    """Everything the routes need, wired over one Supabase connection."""

    def __init__(self, db: DatabaseManager = None):
        self.db = db or DatabaseManager()
        self.subscriptions = SubscriptionManager(self.db)
        self.content = ContentManager(self.db, self.subscriptions)
        self.recommendations = RecommendationSystem(self.db)
        self.payments = PaymentManager(self.db, self.subscriptions)
        self.analytics = AnalyticsService(self.db)
        self.admin = AdminAuth()


_services: Optional[Services] = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = Services()
    return _services


def current_user_id(
    authorization: Optional[str] = Header(None),
    services: Services = Depends(get_services)
) -> Optional[str]:
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    try:
        return services.db.get_user_id_from_token(authorization.split(" ", 1)[1])
    except Exception as e:
        logger.warning(f"Rejected bearer token: {e}")
        return None


def require_self(
    user_id: str,
    viewer_id: Optional[str] = Depends(current_user_id)
) -> str:
    """Per-user routes answer only to that user's own bearer token."""
    if viewer_id is None:
        raise HTTPException(status_code=401, detail="Sign in required")
    if viewer_id != user_id:
        raise HTTPException(status_code=403, detail="Not your account")
    return user_id


def require_admin(
    x_admin_token: Optional[str] = Header(None),
    services: Services = Depends(get_services)
) -> str:
    if not services.admin.is_authenticated(x_admin_token):
        raise HTTPException(status_code=403, detail="Admin login required")
    return x_admin_token


def _raise_http(e: Exception):
    if isinstance(e, NotFoundError):
        raise HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ValidationError):
        raise HTTPException(status_code=422, detail=str(e))
    if isinstance(e, AccessDeniedError):
        raise HTTPException(status_code=402, detail=str(e))
    if isinstance(e, PaymentError):
        raise HTTPException(status_code=400, detail={"message": str(e), "code": e.code})
    raise e


### ── REQUEST MODELS ───────────────────────────────────────────────────────────

class AdminLoginRequest(BaseModel):
    id: str
    password: str


class PaymentRequestBody(BaseModel):
    amount: int
    customer_name: str
    order_name: str = PREMIUM_ORDER_NAME


class PaymentConfirmBody(BaseModel):
    payment_key: str = Field(alias="paymentKey")
    order_id: str = Field(alias="orderId")
    amount: int


class BlogCreateRequest(BlogCreate):
    image_base64: Optional[str] = None
    image_filename: Optional[str] = None
    image_content_type: str = "image/jpeg"


class ContentUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    summary: Optional[str] = None
    content: Optional[str] = None
    category: Optional[str] = None
    youtube_url: Optional[str] = None
    keywords: Optional[List[str]] = None
    is_premium: Optional[bool] = None


### ── PUBLIC CONTENT ───────────────────────────────────────────────────────────

@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/content/{kind}")
def list_content(
    kind: str,
    category: Optional[str] = None,
    q: str = "",
    keyword: Optional[str] = None,
    user_id: Optional[str] = Depends(current_user_id),
    services: Services = Depends(get_services)
):
    try:
        items = services.content.list_content(kind, category=category)
    except NotFoundError as e:
        _raise_http(e)
    return {"items": services.content.visible_to(filter_content(items, q, keyword), user_id)}


@app.get("/content/{kind}/{content_id}")
def get_content(
    kind: str,
    content_id: str,
    user_id: Optional[str] = Depends(current_user_id),
    services: Services = Depends(get_services)
):
    try:
        return services.content.get_for_viewer(kind, content_id, user_id)
    except (NotFoundError, AccessDeniedError) as e:
        _raise_http(e)


@app.post("/content/{kind}/{content_id}/view")
def record_view(
    kind: str,
    content_id: str,
    user_id: Optional[str] = Depends(current_user_id),
    services: Services = Depends(get_services)
):
    try:
        views = services.content.record_view(kind, content_id, user_id)
    except NotFoundError as e:
        _raise_http(e)
    return {"views": views}


@app.get("/keywords")
def keywords(category: Optional[str] = None, services: Services = Depends(get_services)):
    return keyword_index(services.content.list_content("video", category=category))


### ── RECOMMENDATIONS ──────────────────────────────────────────────────────────

@app.get("/videos/{video_id}/recommendations")
def video_recommendations(
    video_id: str,
    limit: int = Query(5, ge=1, le=50),
    user_id: Optional[str] = Depends(current_user_id),
    services: Services = Depends(get_services)
):
    recs = services.recommendations.get_recommendations(video_id, limit=limit)
    return {"recommendations": services.content.visible_to(recs, user_id)}


@app.get("/users/{user_id}/recommendations")
def personalized_recommendations(
    limit: int = Query(5, ge=1, le=50),
    owner_id: str = Depends(require_self),
    services: Services = Depends(get_services)
):
    recs = services.recommendations.get_personalized_recommendations(owner_id, limit)
    return {"recommendations": services.content.visible_to(recs, owner_id)}


### ── SUBSCRIPTIONS & PAYMENTS ─────────────────────────────────────────────────

@app.get("/users/{user_id}/subscription")
def user_subscription(owner_id: str = Depends(require_self), services: Services = Depends(get_services)):
    subscription = services.subscriptions.get_user_subscription(owner_id)
    return {
        "subscription": subscription.model_dump(mode="json") if subscription else None,
        "active": is_subscription_active(subscription),
    }


@app.post("/payments/request")
def payment_request(body: PaymentRequestBody):
    return create_payment_request(
        body.amount, generate_order_id(), body.order_name, body.customer_name, SITE_URL
    )


@app.post("/payments/confirm")
def payment_confirm(
    body: PaymentConfirmBody,
    user_id: Optional[str] = Depends(current_user_id),
    services: Services = Depends(get_services)
):
    if not user_id:
        raise HTTPException(status_code=401, detail="Sign in before confirming a payment")
    try:
        return services.payments.complete_payment(user_id, body.payment_key, body.order_id, body.amount)
    except PaymentError as e:
        _raise_http(e)


@app.get("/auth/callback")
def auth_callback(code: Optional[str] = None, services: Services = Depends(get_services)):
    exchange_code_for_session(services.db, code)
    return RedirectResponse(SITE_URL)


### ── ADMIN ────────────────────────────────────────────────────────────────────

@app.post("/admin/login")
def admin_login(body: AdminLoginRequest, services: Services = Depends(get_services)):
    token = services.admin.login(body.id, body.password)
    if not token:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return {"token": token}


@app.post("/admin/logout")
def admin_logout(token: str = Depends(require_admin), services: Services = Depends(get_services)):
    services.admin.logout(token)
    return {"message": "Logged out"}


@app.post("/admin/content/video", dependencies=[Depends(require_admin)])
def create_video(body: VideoCreate, services: Services = Depends(get_services)):
    try:
        return services.content.create_video(body)
    except ValidationError as e:
        _raise_http(e)


@app.post("/admin/content/blog", dependencies=[Depends(require_admin)])
def create_blog(body: BlogCreateRequest, services: Services = Depends(get_services)):
    image = None
    if body.image_base64:
        try:
            image = base64.b64decode(body.image_base64, validate=True)
        except (binascii.Error, ValueError):
            raise HTTPException(status_code=422, detail="image_base64 is not valid base64")
    payload = BlogCreate(**body.model_dump(include=set(BlogCreate.model_fields)))
    try:
        return services.content.create_blog(payload, image, body.image_filename, body.image_content_type)
    except ValidationError as e:
        _raise_http(e)


@app.patch("/admin/content/{kind}/{content_id}", dependencies=[Depends(require_admin)])
def update_content(kind: str, content_id: str, body: ContentUpdate, services: Services = Depends(get_services)):
    changes: Dict[str, Any] = body.model_dump(exclude_none=True)
    try:
        return services.content.update_content(kind, content_id, changes)
    except (NotFoundError, ValidationError) as e:
        _raise_http(e)


@app.delete("/admin/content/{kind}/{content_id}", dependencies=[Depends(require_admin)])
def delete_content(kind: str, content_id: str, services: Services = Depends(get_services)):
    try:
        services.content.delete_content(kind, content_id)
    except NotFoundError as e:
        _raise_http(e)
    return {"message": "Deleted"}


@app.get("/admin/analytics", dependencies=[Depends(require_admin)])
def admin_analytics(period: str = "7days", services: Services = Depends(get_services)):
    return services.analytics.dashboard(period)


@app.get("/admin/users", dependencies=[Depends(require_admin)])
def admin_users(services: Services = Depends(get_services)):
    return services.analytics.users_overview()


@app.get("/admin/payments", dependencies=[Depends(require_admin)])
def admin_payments(q: str = "", status: str = "all", services: Services = Depends(get_services)):
    return services.payments.list_payments(q, status)


@app.post("/admin/subscriptions/{subscription_id}/cancel", dependencies=[Depends(require_admin)])
def admin_cancel_subscription(subscription_id: str, services: Services = Depends(get_services)):
    if not services.subscriptions.cancel_subscription(subscription_id):
        raise HTTPException(status_code=404, detail="Subscription not found")
    return {"message": "Canceled"}


### ── SCHEDULED MAINTENANCE ────────────────────────────────────────────────────

async def _run_expire_subscriptions():
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, get_services().subscriptions.expire_subscriptions)


async def _run_embedding_backfill():
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, get_services().content.backfill_embeddings)


@app.on_event("startup")
async def startup_event():
    scheduler.add_job(_run_expire_subscriptions, "interval", hours=1, id="expire_subscriptions_job")
    scheduler.add_job(_run_embedding_backfill, "interval", hours=8, id="embedding_backfill_job")
    scheduler.start()
    logger.info("Schedulers started: subscriptions every 1h, embeddings every 8h")


@app.on_event("shutdown")
async def shutdown_event():
    if scheduler.running:
        scheduler.shutdown(wait=False)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("jungian_journals.main:app", host="127.0.0.1", port=8800, reload=True)
