"""Event registration with coupon and referral codes."""

from sqlalchemy.orm import Session

from sketchbrains.errors import NotFoundError, RuleViolationError
from sketchbrains.logging_config import get_logger
from sketchbrains.referral.service import record_referral
from sketchbrains.storage.db import Database, db
from sketchbrains.storage.models import (
    Coupon,
    DiscountType,
    Event,
    EventStatus,
    PaymentStatus,
    Profile,
    Registration,
    utcnow,
)

logger = get_logger(__name__)


def coupon_discount(session: Session, code: str, event: Event) -> tuple[Coupon, float]:
    """Validate a coupon for an event and compute its discount.

    Args:
        session: Open session
        code: Coupon code as typed by the user
        event: Event being registered for

    Returns:
        Tuple of (coupon, discount amount clamped to the event price)

    Raises:
        RuleViolationError: If the coupon cannot be used
    """
    coupon = session.query(Coupon).filter(
        Coupon.code == code.upper().strip(),
        Coupon.is_active == True,
    ).first()

    if not coupon:
        raise RuleViolationError("Invalid coupon code")

    now = utcnow()
    if now < coupon.valid_from or now > coupon.valid_until:
        raise RuleViolationError("Coupon has expired or is not yet valid")

    if coupon.max_uses and coupon.current_uses >= coupon.max_uses:
        raise RuleViolationError("Coupon has reached maximum usage")

    if coupon.applicable_events and event.id not in coupon.applicable_events:
        raise RuleViolationError("Coupon not applicable to this event")

    if coupon.discount_type == DiscountType.PERCENTAGE:
        discount = event.price * coupon.discount_value / 100
    else:
        discount = coupon.discount_value

    return coupon, min(discount, event.price)


class RegistrationService:
    """Service for registering users for events."""

    def __init__(self, database: Database | None = None):
        self.db = database or db
        self.logger = get_logger(__name__)

    def register(
        self,
        user_id: str,
        event_id: str,
        coupon_code: str | None = None,
        referral_code: str | None = None,
    ) -> Registration:
        """Register a user for an event.

        Creates the registration as ``free`` when nothing is left to pay and
        ``pending`` otherwise. When a referral code is given (or the user
        signed up with one) a pending referral is recorded in the same unit
        of work.

        Args:
            user_id: Registering user
            event_id: Event to register for
            coupon_code: Optional coupon code
            referral_code: Optional referrer code

        Returns:
            The registration

        Raises:
            NotFoundError: If the user or event does not exist
            RuleViolationError: If the event is over, the user is already
                registered, or the coupon is unusable
        """
        with self.db.session() as session:
            profile = session.get(Profile, user_id)
            if not profile:
                raise NotFoundError("User", user_id)

            event = session.get(Event, event_id)
            if not event:
                raise NotFoundError("Event", event_id)

            if event.status == EventStatus.COMPLETED:
                raise RuleViolationError("Event already completed")

            existing = session.query(Registration).filter(
                Registration.user_id == user_id,
                Registration.event_id == event_id,
            ).first()

            if existing and existing.payment_status == PaymentStatus.FAILED:
                # Failed payments may be retried
                existing.payment_status = PaymentStatus.PENDING
                self.logger.info("registration_retry", registration_id=existing.id, user_id=user_id)
                return existing

            if existing and existing.payment_status == PaymentStatus.PENDING:
                return existing

            if existing:
                raise RuleViolationError("Already registered for this event", status_code=409)

            if event.max_participants:
                taken = session.query(Registration).filter(
                    Registration.event_id == event_id,
                    Registration.payment_status.in_([PaymentStatus.COMPLETED, PaymentStatus.FREE]),
                ).count()
                if taken >= event.max_participants:
                    raise RuleViolationError("Event is full", status_code=409)

            discount = 0.0
            if coupon_code:
                coupon, discount = coupon_discount(session, coupon_code, event)
                coupon.current_uses += 1

            amount = max(0.0, event.price - discount)
            registration = Registration(
                user_id=user_id,
                event_id=event_id,
                amount_paid=amount,
                coupon_code=coupon_code.upper().strip() if coupon_code else None,
                payment_status=PaymentStatus.FREE if amount == 0 else PaymentStatus.PENDING,
            )
            session.add(registration)
            session.flush()

            code = referral_code or profile.referred_by
            if code:
                record_referral(session, code, user_id, event_id, registration.id)

            self.logger.info(
                "registration_created",
                registration_id=registration.id,
                user_id=user_id,
                event_id=event_id,
                payment_status=registration.payment_status.value,
                amount=amount,
            )
            return registration
