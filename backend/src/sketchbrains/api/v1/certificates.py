"""Certificate API v1 endpoints."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel

from sketchbrains.api.rate_limit import CERTIFICATE_VERIFY_LIMIT, limiter
from sketchbrains.auth.middleware import Principal, require_auth
from sketchbrains.certificates.service import CertificateService
from sketchbrains.storage.db import Database, get_database

router = APIRouter(prefix="/certificates", tags=["certificates"])


class IssueCertificateRequest(BaseModel):
    registration_id: str


class CertificateResponse(BaseModel):
    id: str
    certificate_number: str
    verification_token: str
    event_id: str
    issued_at: datetime
    metadata: dict[str, Any]


class VerificationResponse(BaseModel):
    valid: bool
    certificate_number: str
    issued_at: datetime
    revoked_at: datetime | None = None
    revoke_reason: str | None = None
    details: dict[str, Any]


@router.post("", response_model=CertificateResponse)
async def issue_certificate(
    body: IssueCertificateRequest,
    response: Response,
    principal: Principal = Depends(require_auth),
    database: Database = Depends(get_database),
):
    """Issue the certificate for a completed, paid registration.

    Returns 201 for a new certificate and 200 when it already existed.
    """
    certificate, created = CertificateService(database).issue(principal, body.registration_id)
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return CertificateResponse(
        id=certificate.id,
        certificate_number=certificate.certificate_number,
        verification_token=certificate.verification_token,
        event_id=certificate.event_id,
        issued_at=certificate.issued_at,
        metadata=certificate.metadata_json,
    )


@router.get("/verify/{token}", response_model=VerificationResponse)
@limiter.limit(CERTIFICATE_VERIFY_LIMIT)
async def verify_certificate(request: Request, token: str, database: Database = Depends(get_database)):
    """Public verification of a certificate."""
    return CertificateService(database).verify(token)
