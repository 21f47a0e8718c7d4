"""FastAPI dependencies for certificates."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import CertificateService


async def get_certificate_service(request: Request) -> CertificateService:
    """Get certificate service from app state."""
    app_state = request.app.state
    if (
        not hasattr(app_state, "certificate_service")
        or not app_state.certificate_service
    ):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Servico de certificados nao disponivel",
        )
    return app_state.certificate_service


CertificateServiceDep = Annotated[CertificateService, Depends(get_certificate_service)]
