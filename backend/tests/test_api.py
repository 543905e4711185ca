"""HTTP tests for the v1 API."""

import pytest

from conftest import (
    SERVICE_TOKEN,
    FakeEmailSender,
    FakeSmsSender,
    auth_headers,
    payment_payload,
    signed_webhook,
)
from sketchbrains.api.main import app
from sketchbrains.api.v1.notifications import get_notification_dispatcher
from sketchbrains.notifications.dispatcher import NotificationDispatcher
from sketchbrains.notifications.queue import NotificationQueue
from sketchbrains.payments.webhook import PaymentWebhookHandler
from sketchbrains.settings import settings
from sketchbrains.storage.models import (
    EventStatus,
    NotificationType,
    PaymentStatus,
    Registration,
    WebhookLog,
)

SERVICE_HEADERS = {"X-Service-Token": SERVICE_TOKEN}


class TestMeta:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_security_headers(self, client):
        response = client.get("/")
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["X-Content-Type-Options"] == "nosniff"


class TestRazorpayWebhook:
    @pytest.fixture
    def order(self, make_profile, make_event, make_registration, make_transaction):
        user = make_profile()
        registration = make_registration(user.id, make_event().id)
        make_transaction(registration, order_id="order_api1")
        return registration

    def test_not_configured(self, client, monkeypatch):
        monkeypatch.setattr(settings, "razorpay_webhook_secret", None)
        body, headers = signed_webhook(payment_payload("order_api1"))

        response = client.post("/api/v1/webhooks/razorpay", content=body, headers=headers)

        assert response.status_code == 503

    def test_bad_signature_is_rejected_before_logging(self, client, database, order):
        body, headers = signed_webhook(payment_payload("order_api1"), secret="wrong")

        response = client.post("/api/v1/webhooks/razorpay", content=body, headers=headers)

        assert response.status_code == 400
        with database.session() as session:
            assert session.query(WebhookLog).count() == 0
            assert session.get(Registration, order.id).payment_status == PaymentStatus.PENDING

    def test_missing_signature_is_rejected(self, client, order):
        body, headers = signed_webhook(payment_payload("order_api1"))
        del headers["X-Razorpay-Signature"]

        response = client.post("/api/v1/webhooks/razorpay", content=body, headers=headers)

        assert response.status_code == 400

    def test_captured_payment(self, client, database, order):
        body, headers = signed_webhook(payment_payload("order_api1"))

        response = client.post("/api/v1/webhooks/razorpay", content=body, headers=headers)

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Webhook processed"}
        with database.session() as session:
            assert session.get(Registration, order.id).payment_status == PaymentStatus.COMPLETED

    def test_unknown_order(self, client):
        body, headers = signed_webhook(payment_payload("order_unknown"))

        response = client.post("/api/v1/webhooks/razorpay", content=body, headers=headers)

        assert response.status_code == 404
        assert response.json() == {"error": "Transaction not found"}

    def test_failed_payment(self, client, database, order):
        body, headers = signed_webhook(payment_payload("order_api1", event="payment.failed", status="failed"))

        response = client.post("/api/v1/webhooks/razorpay", content=body, headers=headers)

        assert response.status_code == 200
        with database.session() as session:
            assert session.get(Registration, order.id).payment_status == PaymentStatus.FAILED

    def test_malformed_payment(self, client):
        body, headers = signed_webhook({"event": "payment.captured", "payload": {}})

        response = client.post("/api/v1/webhooks/razorpay", content=body, headers=headers)

        assert response.status_code == 400

    def test_internal_failure(self, client, monkeypatch):
        def explode(self, payload):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(PaymentWebhookHandler, "handle", explode)
        body, headers = signed_webhook(payment_payload("order_api1"))

        response = client.post("/api/v1/webhooks/razorpay", content=body, headers=headers)

        assert response.status_code == 500
        assert response.json() == {"error": "Webhook processing failed", "details": "database unavailable"}


class TestReferralEndpoints:
    def test_process_requires_credentials(self, client):
        assert client.post("/api/v1/referrals/process").status_code == 401

    def test_process_rejects_regular_users(self, client, make_profile):
        user = make_profile()
        response = client.post("/api/v1/referrals/process", headers=auth_headers(user.id))
        assert response.status_code == 401

    def test_process_with_service_token(self, client, make_profile, make_event, paid_referrals):
        referrer = make_profile()
        event = make_event()
        paid_referrals(referrer, event, 2)

        response = client.get("/api/v1/referrals/process", headers=SERVICE_HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["processedReferrals"] == 2
        assert data["rewardsGranted"] == 1
        assert data["details"]["rewards"] == [
            {"referrerId": referrer.id, "eventId": event.id, "referralCount": 2}
        ]

    def test_process_as_admin(self, client, make_profile):
        admin = make_profile(is_admin=True)
        response = client.post("/api/v1/referrals/process", headers=auth_headers(admin.id))
        assert response.status_code == 200
        assert response.json()["rewardsGranted"] == 0

    def test_code_and_validate(self, client, make_profile):
        user = make_profile(full_name="Kiran Shah")

        code = client.get("/api/v1/referrals/code", headers=auth_headers(user.id)).json()["code"]
        again = client.get("/api/v1/referrals/code", headers=auth_headers(user.id)).json()["code"]
        valid = client.post("/api/v1/referrals/validate", json={"code": code.lower()}).json()
        invalid = client.post("/api/v1/referrals/validate", json={"code": "NOPE0000"}).json()

        assert code == again
        assert valid == {"valid": True, "referrer_name": "Kiran"}
        assert invalid["valid"] is False

    def test_stats(self, client, make_profile, make_event, paid_referrals):
        referrer = make_profile(referral_code="STATS123")
        paid_referrals(referrer, make_event(), 1)

        response = client.get("/api/v1/referrals/stats", headers=auth_headers(referrer.id))

        assert response.status_code == 200
        data = response.json()
        assert data["code"] == "STATS123"
        assert data["total_referrals"] == 1
        assert data["pending_referrals"] == 1

    def test_top_is_admin_only(self, client, make_profile):
        user = make_profile()
        admin = make_profile(is_admin=True)

        assert client.get("/api/v1/referrals/top", headers=auth_headers(user.id)).status_code == 403
        assert client.get("/api/v1/referrals/top", headers=auth_headers(admin.id)).status_code == 200

    def test_invalid_token(self, client):
        response = client.get("/api/v1/referrals/code", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401


class TestNotificationEndpoints:
    def test_send(self, client, database, make_profile):
        user = make_profile(email="inbox@example.com")
        queue = NotificationQueue(database)
        queue.enqueue(user.id, NotificationType.EMAIL, "Hello")
        queue.enqueue(user.id, NotificationType.SMS, "Hello")
        email_sender = FakeEmailSender()
        app.dependency_overrides[get_notification_dispatcher] = lambda: NotificationDispatcher(
            database, email_sender, FakeSmsSender()
        )

        response = client.post("/api/v1/notifications/send", headers=SERVICE_HEADERS)

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "processed": {"email": 1, "sms": 0, "in_app": 0, "cancelled": 1, "failed": 0},
            "total": 2,
        }
        assert email_sender.sent[0][0] == "inbox@example.com"

    def test_send_requires_service(self, client):
        assert client.post("/api/v1/notifications/send").status_code == 401

    def test_inbox_and_read(self, client, database, make_profile):
        user = make_profile()
        notification = NotificationQueue(database).notify_in_app(user.id, "Hello", "World")
        headers = auth_headers(user.id)

        inbox = client.get("/api/v1/notifications/inbox", headers=headers).json()
        read = client.post(f"/api/v1/notifications/{notification.id}/read", headers=headers)
        unread = client.get("/api/v1/notifications/inbox?unread_only=true", headers=headers).json()

        assert [n["title"] for n in inbox] == ["Hello"]
        assert read.status_code == 200
        assert read.json()["read_at"] is not None
        assert unread == []

    def test_read_unknown_notification(self, client, make_profile):
        user = make_profile()
        response = client.post("/api/v1/notifications/missing/read", headers=auth_headers(user.id))
        assert response.status_code == 404

    def test_preferences(self, client, make_profile):
        user = make_profile()

        response = client.put(
            "/api/v1/notifications/preferences",
            json={"sms_enabled": True},
            headers=auth_headers(user.id),
        )

        assert response.status_code == 200
        assert response.json() == {
            "email_enabled": True,
            "sms_enabled": True,
            "in_app_enabled": True,
            "marketing_enabled": False,
        }


class TestRegistrationAndPayments:
    def test_register_order_and_history(self, client, make_profile, make_event):
        user = make_profile()
        event = make_event(price=750.0)
        headers = auth_headers(user.id)

        registered = client.post(f"/api/v1/events/{event.id}/register", json={}, headers=headers)
        order = client.post(
            "/api/v1/payments/orders",
            json={"registration_id": registered.json()["id"]},
            headers=headers,
        )
        history = client.get("/api/v1/payments/history", headers=headers)

        assert registered.status_code == 201
        assert registered.json()["payment_status"] == "pending"
        assert order.status_code == 200
        assert order.json()["amount"] == 75000
        assert [t["gateway_order_id"] for t in history.json()] == [order.json()["order_id"]]

    def test_register_requires_auth(self, client, make_event):
        event = make_event()
        assert client.post(f"/api/v1/events/{event.id}/register", json={}).status_code == 401

    def test_duplicate_registration_conflict(self, client, make_profile, make_event, make_registration):
        user = make_profile()
        event = make_event()
        make_registration(user.id, event.id, payment_status=PaymentStatus.COMPLETED)

        response = client.post(f"/api/v1/events/{event.id}/register", json={}, headers=auth_headers(user.id))

        assert response.status_code == 409
        assert response.json() == {"error": "Already registered for this event"}

    def test_unknown_event(self, client, make_profile):
        user = make_profile()
        response = client.post("/api/v1/events/missing/register", json={}, headers=auth_headers(user.id))
        assert response.status_code == 404
        assert response.json() == {"error": "Event not found"}


class TestCertificateEndpoints:
    def test_issue_and_verify(self, client, make_profile, make_event, make_registration):
        user = make_profile(full_name="Nisha Verma")
        event = make_event(status=EventStatus.COMPLETED)
        registration = make_registration(user.id, event.id, payment_status=PaymentStatus.COMPLETED)
        headers = auth_headers(user.id)

        issued = client.post("/api/v1/certificates", json={"registration_id": registration.id}, headers=headers)
        repeat = client.post("/api/v1/certificates", json={"registration_id": registration.id}, headers=headers)
        token = issued.json()["verification_token"]
        verified = client.get(f"/api/v1/certificates/verify/{token}")

        assert issued.status_code == 201
        assert repeat.status_code == 200
        assert repeat.json()["id"] == issued.json()["id"]
        assert verified.status_code == 200
        assert verified.json()["valid"] is True
        assert verified.json()["details"]["student_name"] == "Nisha Verma"

    def test_unpaid_registration(self, client, make_profile, make_event, make_registration):
        user = make_profile()
        event = make_event(status=EventStatus.COMPLETED)
        registration = make_registration(user.id, event.id)

        response = client.post(
            "/api/v1/certificates",
            json={"registration_id": registration.id},
            headers=auth_headers(user.id),
        )

        assert response.status_code == 403
        assert response.json() == {"error": "Payment not completed"}

    def test_verify_unknown(self, client):
        assert client.get("/api/v1/certificates/verify/unknown").status_code == 404
