from fastapi import APIRouter, Depends

from app.api.deps import get_metadata_audit_service
from app.schemas.audit import MetadataAuditResult
from app.schemas.ruleset import ResolveRequest
from app.services.metadata_audit import MetadataAuditService

router = APIRouter(prefix="/audits", tags=["Audits"])


@router.post("/metadata", response_model=MetadataAuditResult)
async def audit_metadata(
    request_body: ResolveRequest,
    service: MetadataAuditService = Depends(get_metadata_audit_service),
) -> MetadataAuditResult:
    """Score title, subtitle and description with the app's ruleset."""
    return await service.audit(
        request_body.app_metadata,
        locale=request_body.locale,
        organization_id=request_body.organization_id,
    )
