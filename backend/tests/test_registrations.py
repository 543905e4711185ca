"""Tests for registrations, coupons and checkout orders."""

from datetime import timedelta

import pytest

from sketchbrains.errors import NotFoundError, RuleViolationError
from sketchbrains.payments.checkout import CheckoutService, order_id_for
from sketchbrains.registrations.service import RegistrationService
from sketchbrains.storage.models import (
    Coupon,
    DiscountType,
    EventStatus,
    PaymentStatus,
    PaymentTransaction,
    Referral,
    ReferralStatus,
    TransactionStatus,
    utcnow,
)


@pytest.fixture
def service(database):
    return RegistrationService(database)


class TestRegister:
    def test_paid_event_starts_pending(self, service, make_profile, make_event):
        user = make_profile()
        event = make_event(price=500.0)

        registration = service.register(user.id, event.id)

        assert registration.payment_status == PaymentStatus.PENDING
        assert registration.amount_paid == 500.0

    def test_free_event_is_confirmed(self, service, make_profile, make_event):
        user = make_profile()
        event = make_event(price=0.0)

        registration = service.register(user.id, event.id)

        assert registration.payment_status == PaymentStatus.FREE
        assert registration.amount_paid == 0

    def test_unknown_event(self, service, make_profile):
        user = make_profile()
        with pytest.raises(NotFoundError):
            service.register(user.id, "no-such-event")

    def test_completed_event_is_closed(self, service, make_profile, make_event):
        user = make_profile()
        event = make_event(status=EventStatus.COMPLETED)
        with pytest.raises(RuleViolationError):
            service.register(user.id, event.id)

    def test_already_paid_is_a_conflict(self, service, make_profile, make_event, make_registration):
        user = make_profile()
        event = make_event()
        make_registration(user.id, event.id, payment_status=PaymentStatus.COMPLETED)

        with pytest.raises(RuleViolationError) as exc:
            service.register(user.id, event.id)
        assert exc.value.status_code == 409

    def test_pending_registration_is_returned(self, service, make_profile, make_event):
        user = make_profile()
        event = make_event()
        first = service.register(user.id, event.id)

        second = service.register(user.id, event.id)

        assert second.id == first.id
        assert second.payment_status == PaymentStatus.PENDING

    def test_failed_registration_can_be_retried(self, service, make_profile, make_event, make_registration):
        user = make_profile()
        event = make_event()
        failed = make_registration(user.id, event.id, payment_status=PaymentStatus.FAILED)

        registration = service.register(user.id, event.id)

        assert registration.id == failed.id
        assert registration.payment_status == PaymentStatus.PENDING

    def test_full_event_is_a_conflict(self, service, make_profile, make_event, make_registration):
        event = make_event(max_participants=1)
        make_registration(make_profile().id, event.id, payment_status=PaymentStatus.COMPLETED)

        with pytest.raises(RuleViolationError) as exc:
            service.register(make_profile().id, event.id)
        assert exc.value.status_code == 409


class TestCoupons:
    def test_percentage_coupon(self, database, service, make_profile, make_event, make_coupon):
        coupon = make_coupon("SAVE20", discount_value=20.0)
        event = make_event(price=500.0)

        registration = service.register(make_profile().id, event.id, coupon_code="save20 ")

        assert registration.amount_paid == 400.0
        assert registration.coupon_code == "SAVE20"
        with database.session() as session:
            assert session.get(Coupon, coupon.id).current_uses == 1

    def test_fixed_coupon_covering_price_makes_it_free(self, service, make_profile, make_event, make_coupon):
        make_coupon("FREEPASS", discount_type=DiscountType.FIXED, discount_value=1000.0)
        event = make_event(price=500.0)

        registration = service.register(make_profile().id, event.id, coupon_code="FREEPASS")

        assert registration.amount_paid == 0
        assert registration.payment_status == PaymentStatus.FREE

    def test_expired_coupon(self, service, make_profile, make_event, make_coupon):
        make_coupon("OLD", valid_until=utcnow() - timedelta(hours=1))
        with pytest.raises(RuleViolationError, match="expired"):
            service.register(make_profile().id, make_event().id, coupon_code="OLD")

    def test_used_up_coupon(self, service, make_profile, make_event, make_coupon):
        make_coupon("ONCE", max_uses=1, current_uses=1)
        with pytest.raises(RuleViolationError, match="maximum usage"):
            service.register(make_profile().id, make_event().id, coupon_code="ONCE")

    def test_coupon_for_other_event(self, service, make_profile, make_event, make_coupon):
        other = make_event(title="Other")
        make_coupon("ONLYTHAT", applicable_events=[other.id])
        with pytest.raises(RuleViolationError, match="not applicable"):
            service.register(make_profile().id, make_event().id, coupon_code="ONLYTHAT")

    def test_unknown_coupon(self, service, make_profile, make_event):
        with pytest.raises(RuleViolationError, match="Invalid coupon"):
            service.register(make_profile().id, make_event().id, coupon_code="NOPE")


class TestReferralCodes:
    def test_code_records_pending_referral(self, database, service, make_profile, make_event):
        referrer = make_profile(referral_code="ASHA2024")
        referee = make_profile()
        event = make_event()

        registration = service.register(referee.id, event.id, referral_code="asha2024")

        with database.session() as session:
            referral = session.query(Referral).one()
        assert referral.referrer_id == referrer.id
        assert referral.referee_id == referee.id
        assert referral.registration_id == registration.id
        assert referral.status == ReferralStatus.PENDING

    def test_signup_code_is_used_when_none_given(self, database, service, make_profile, make_event):
        referrer = make_profile(referral_code="RAVI7777")
        referee = make_profile(referred_by="RAVI7777")

        service.register(referee.id, make_event().id)

        with database.session() as session:
            assert session.query(Referral).one().referrer_id == referrer.id

    def test_self_referral_is_ignored(self, database, service, make_profile, make_event):
        user = make_profile(referral_code="SELFCODE")

        service.register(user.id, make_event().id, referral_code="SELFCODE")

        with database.session() as session:
            assert session.query(Referral).count() == 0

    def test_unknown_code_does_not_block_registration(self, database, service, make_profile, make_event):
        registration = service.register(make_profile().id, make_event().id, referral_code="GHOST")

        assert registration.payment_status == PaymentStatus.PENDING
        with database.session() as session:
            assert session.query(Referral).count() == 0


class TestCheckout:
    def test_order_for_pending_registration(self, database, make_profile, make_event, make_registration):
        user = make_profile()
        registration = make_registration(user.id, make_event().id, amount_paid=499.5)

        order = CheckoutService(database).create_order(user.id, registration.id)

        assert order["amount"] == 49950
        assert order["currency"] == "INR"
        assert order["order_id"] == order_id_for(order["transaction_id"])
        with database.session() as session:
            transaction = session.get(PaymentTransaction, order["transaction_id"])
        assert transaction.status == TransactionStatus.INITIATED
        assert transaction.gateway_order_id == order["order_id"]
        assert transaction.registration_id == registration.id

    def test_order_id_format(self):
        assert order_id_for("1b9d6bcd-bbfd-4b2d-9b5d-ab8dfbbd4bed") == "order_1b9d6bcdbbfd4b"

    def test_free_registration_has_nothing_to_pay(self, database, make_profile, make_event, make_registration):
        user = make_profile()
        registration = make_registration(
            user.id, make_event().id, payment_status=PaymentStatus.FREE, amount_paid=0
        )
        with pytest.raises(RuleViolationError):
            CheckoutService(database).create_order(user.id, registration.id)

    def test_other_users_registration(self, database, make_profile, make_event, make_registration):
        owner = make_profile()
        registration = make_registration(owner.id, make_event().id)
        with pytest.raises(NotFoundError):
            CheckoutService(database).create_order(make_profile().id, registration.id)

    def test_payment_history_is_newest_first(self, database, make_profile, make_event, make_registration):
        user = make_profile()
        registration = make_registration(user.id, make_event().id)
        checkout = CheckoutService(database)
        first = checkout.create_order(user.id, registration.id)
        second = checkout.create_order(user.id, registration.id)

        history = checkout.payment_history(user.id)

        assert [t.id for t in history] == [second["transaction_id"], first["transaction_id"]]
