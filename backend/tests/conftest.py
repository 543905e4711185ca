"""Shared fixtures: an in-memory database per test, row factories and fake senders."""

import hashlib
import hmac
import json
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from sketchbrains.settings import settings
from sketchbrains.storage.db import Database, get_database
from sketchbrains.storage.models import (
    Coupon,
    DiscountType,
    Event,
    EventCategory,
    EventStatus,
    PaymentStatus,
    PaymentTransaction,
    Profile,
    Referral,
    ReferralStatus,
    Registration,
    TransactionStatus,
    utcnow,
)

WEBHOOK_SECRET = "whsec_test"
SERVICE_TOKEN = "service-token-test"


@pytest.fixture
def database():
    database = Database("sqlite://")
    database.create_tables()
    yield database
    database.drop_tables()


# ==================== FACTORIES ====================


@pytest.fixture
def make_profile(database):
    def _make(**kwargs) -> Profile:
        kwargs.setdefault("email", f"user{utcnow().timestamp()}@example.com")
        kwargs.setdefault("full_name", "Test User")
        with database.session() as session:
            profile = Profile(**kwargs)
            session.add(profile)
            session.flush()
            return profile

    return _make


@pytest.fixture
def make_event(database):
    def _make(**kwargs) -> Event:
        kwargs.setdefault("title", "Intro to Python")
        kwargs.setdefault("category", EventCategory.TECHNICAL)
        kwargs.setdefault("price", 500.0)
        kwargs.setdefault("status", EventStatus.UPCOMING)
        with database.session() as session:
            event = Event(**kwargs)
            session.add(event)
            session.flush()
            return event

    return _make


@pytest.fixture
def make_registration(database):
    def _make(user_id: str, event_id: str, **kwargs) -> Registration:
        kwargs.setdefault("payment_status", PaymentStatus.PENDING)
        kwargs.setdefault("amount_paid", 500.0)
        with database.session() as session:
            registration = Registration(user_id=user_id, event_id=event_id, **kwargs)
            session.add(registration)
            session.flush()
            return registration

    return _make


@pytest.fixture
def make_transaction(database):
    def _make(registration: Registration, order_id: str = "order_test123", **kwargs) -> PaymentTransaction:
        kwargs.setdefault("status", TransactionStatus.INITIATED)
        with database.session() as session:
            transaction = PaymentTransaction(
                user_id=registration.user_id,
                event_id=registration.event_id,
                registration_id=registration.id,
                amount=registration.amount_paid,
                gateway_order_id=order_id,
                **kwargs,
            )
            session.add(transaction)
            session.flush()
            return transaction

    return _make


@pytest.fixture
def make_coupon(database):
    def _make(code: str = "SAVE20", **kwargs) -> Coupon:
        now = utcnow()
        kwargs.setdefault("discount_type", DiscountType.PERCENTAGE)
        kwargs.setdefault("discount_value", 20.0)
        kwargs.setdefault("valid_from", now - timedelta(days=1))
        kwargs.setdefault("valid_until", now + timedelta(days=1))
        with database.session() as session:
            coupon = Coupon(code=code, **kwargs)
            session.add(coupon)
            session.flush()
            return coupon

    return _make


@pytest.fixture
def paid_referrals(database, make_profile, make_registration):
    """Create ``count`` referees whose referral to ``referrer`` is in the given state."""

    def _make(
        referrer: Profile,
        event: Event,
        count: int,
        payment_status: PaymentStatus = PaymentStatus.COMPLETED,
        status: ReferralStatus = ReferralStatus.PENDING,
    ) -> list[Referral]:
        referrals = []
        for i in range(count):
            referee = make_profile(email=f"referee{i}-{referrer.id[:6]}@example.com", full_name=f"Referee {i}")
            registration = make_registration(referee.id, event.id, payment_status=payment_status)
            with database.session() as session:
                referral = Referral(
                    referrer_id=referrer.id,
                    referee_id=referee.id,
                    event_id=event.id,
                    registration_id=registration.id,
                    status=status,
                )
                session.add(referral)
                session.flush()
                referrals.append(referral)
        return referrals

    return _make


# ==================== FAKE SENDERS ====================


class FakeEmailSender:
    def __init__(self, result: bool = True):
        self.result = result
        self.sent: list[tuple[str, str, str]] = []

    async def send(self, to_email: str, subject: str, text_content: str, html_content: str | None = None) -> bool:
        self.sent.append((to_email, subject, text_content))
        return self.result


class FakeSmsSender:
    def __init__(self, result: bool = True):
        self.result = result
        self.sent: list[tuple[str, str]] = []

    async def send(self, to_number: str, body: str) -> bool:
        self.sent.append((to_number, body))
        return self.result


@pytest.fixture
def email_sender():
    return FakeEmailSender()


@pytest.fixture
def sms_sender():
    return FakeSmsSender()


# ==================== API ====================


@pytest.fixture
def client(database, monkeypatch):
    from sketchbrains.api.main import app

    monkeypatch.setattr(settings, "razorpay_webhook_secret", WEBHOOK_SECRET)
    monkeypatch.setattr(settings, "service_token", SERVICE_TOKEN)
    app.dependency_overrides[get_database] = lambda: database
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(user_id: str) -> dict[str, str]:
    token = jwt.encode({"sub": user_id}, settings.jwt_secret_key, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


def signed_webhook(payload: dict, secret: str = WEBHOOK_SECRET) -> tuple[bytes, dict[str, str]]:
    body = json.dumps(payload).encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return body, {"X-Razorpay-Signature": signature, "Content-Type": "application/json"}


def payment_payload(
    order_id: str,
    event: str = "payment.captured",
    status: str = "captured",
    payment_id: str = "pay_test123",
    amount: int = 50000,
    **entity,
) -> dict:
    return {
        "event": event,
        "payload": {
            "payment": {
                "entity": {
                    "id": payment_id,
                    "order_id": order_id,
                    "amount": amount,
                    "currency": "INR",
                    "status": status,
                    "method": "upi",
                    **entity,
                }
            }
        },
    }
