"""Completion certificates."""

import secrets
import time
from typing import Any

from sketchbrains.auth.middleware import Principal
from sketchbrains.errors import NotFoundError, RuleViolationError
from sketchbrains.logging_config import get_logger
from sketchbrains.notifications.queue import add_in_app
from sketchbrains.storage.db import Database, db
from sketchbrains.storage.models import (
    Certificate,
    Event,
    EventStatus,
    InAppType,
    PaymentStatus,
    Profile,
    Registration,
)

logger = get_logger(__name__)


def certificate_number(user_id: str) -> str:
    """CERT-<epoch ms>-<first 8 chars of the user id>."""
    return f"CERT-{int(time.time() * 1000)}-{user_id[:8].upper()}"


class CertificateService:
    """Issues and verifies certificates for completed events."""

    def __init__(self, database: Database | None = None):
        self.db = database or db
        self.logger = get_logger(__name__)

    def issue(self, principal: Principal, registration_id: str) -> tuple[Certificate, bool]:
        """Issue the certificate for a registration, or return the existing one.

        Args:
            principal: Caller; must own the registration unless admin
            registration_id: Registration to certify

        Returns:
            Tuple of (certificate, created)

        Raises:
            NotFoundError: If the registration does not exist
            RuleViolationError: If the caller may not, the event is not over,
                or the registration is not paid
        """
        with self.db.session() as session:
            registration = session.get(Registration, registration_id)
            if not registration:
                raise NotFoundError("Registration", registration_id)

            if registration.user_id != principal.user_id and not principal.is_admin:
                raise RuleViolationError("Not your registration", status_code=403)

            event = session.get(Event, registration.event_id)
            if not event:
                raise NotFoundError("Event", registration.event_id)

            if event.status != EventStatus.COMPLETED:
                raise RuleViolationError("Event not yet completed")

            if registration.payment_status not in (PaymentStatus.COMPLETED, PaymentStatus.FREE):
                raise RuleViolationError("Payment not completed", status_code=403)

            existing = session.query(Certificate).filter(
                Certificate.registration_id == registration_id
            ).first()
            if existing:
                return existing, False

            profile = session.get(Profile, registration.user_id)
            certificate = Certificate(
                user_id=registration.user_id,
                event_id=event.id,
                registration_id=registration.id,
                certificate_number=certificate_number(registration.user_id),
                verification_token=secrets.token_urlsafe(24),
                metadata_json={
                    "student_name": profile.full_name if profile else None,
                    "event_title": event.title,
                    "completion_date": event.end_date.isoformat() if event.end_date else None,
                    "category": event.category.value,
                },
            )
            session.add(certificate)

            add_in_app(
                session,
                registration.user_id,
                "Certificate Issued",
                f"Your certificate for {event.title} is ready.",
                InAppType.SUCCESS,
                action_url="/dashboard",
            )
            session.flush()

            self.logger.info(
                "certificate_issued",
                certificate_id=certificate.id,
                registration_id=registration_id,
                number=certificate.certificate_number,
            )
            return certificate, True

    def verify(self, token: str) -> dict[str, Any]:
        """Look up a certificate by its public verification token.

        Raises:
            NotFoundError: If no certificate carries the token
        """
        with self.db.session() as session:
            certificate = session.query(Certificate).filter(
                Certificate.verification_token == token
            ).first()
            if not certificate:
                raise NotFoundError("Certificate", token)

            return {
                "valid": certificate.revoked_at is None,
                "certificate_number": certificate.certificate_number,
                "issued_at": certificate.issued_at,
                "revoked_at": certificate.revoked_at,
                "revoke_reason": certificate.revoke_reason,
                "details": certificate.metadata_json,
            }
