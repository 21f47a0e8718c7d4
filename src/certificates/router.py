"""Certificate API endpoints.

Provides routes for:
- Listing the learner's certificates
- Public verification by code
- Download tracking
"""

from fastapi import APIRouter

from src.auth.dependencies import CurrentUser
from src.progress.dependencies import handle_progress_error
from src.progress.exceptions import ProgressError

from .dependencies import CertificateServiceDep
from .schemas import (
    CertificateListResponse,
    CertificateResponse,
    CertificateVerificationResponse,
)


router = APIRouter(prefix="/v1/certificates", tags=["certificates"])


@router.get(
    "",
    response_model=CertificateListResponse,
    summary="List my certificates",
)
async def list_my_certificates(
    certificate_service: CertificateServiceDep,
    user: CurrentUser,
) -> CertificateListResponse:
    """Get every certificate issued to the current user, newest first."""
    certificates = await certificate_service.list_certificates(user.id)
    return CertificateListResponse(
        items=[CertificateResponse.from_entity(c) for c in certificates],
        total=len(certificates),
    )


@router.get(
    "/verify/{verification_code}",
    response_model=CertificateVerificationResponse,
    summary="Verify a certificate",
)
async def verify_certificate(
    verification_code: str,
    certificate_service: CertificateServiceDep,
) -> CertificateVerificationResponse:
    """Public lookup by verification code. No authentication required."""
    try:
        certificate = await certificate_service.verify_certificate(verification_code)
    except ProgressError as e:
        raise handle_progress_error(e) from e
    return CertificateVerificationResponse.from_entity(certificate)


@router.post(
    "/{certificate_id}/download",
    response_model=CertificateResponse,
    summary="Record a certificate download",
)
async def download_certificate(
    certificate_id: str,
    certificate_service: CertificateServiceDep,
    user: CurrentUser,
) -> CertificateResponse:
    """Count a download and return the data the document is rendered from."""
    try:
        certificate = await certificate_service.record_download(
            user.id, certificate_id
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e
    return CertificateResponse.from_entity(certificate)
