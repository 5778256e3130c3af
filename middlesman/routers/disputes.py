"""Dispute evidence endpoints for the parties involved."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from middlesman.auth.rate_limit import check_rate_limit
from middlesman.auth.session import current_user
from middlesman.database import get_db
from middlesman.models.user import User
from middlesman.schemas.dispute import EvidenceCreate, EvidenceResponse
from middlesman.services import dispute as dispute_service

router = APIRouter(
    prefix="/api/disputes",
    tags=["disputes"],
    dependencies=[Depends(check_rate_limit)],
)


@router.get("/{dispute_id}/evidence", response_model=list[EvidenceResponse])
async def list_evidence(
    dispute_id: int,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_db),
) -> list[EvidenceResponse]:
    evidence = await dispute_service.list_evidence(db, dispute_id, user)
    return [EvidenceResponse.model_validate(e) for e in evidence]


@router.post("/{dispute_id}/evidence", response_model=EvidenceResponse, status_code=201)
async def add_evidence(
    dispute_id: int,
    data: EvidenceCreate,
    user: User = Depends(current_user),
    db: AsyncSession = Depends(get_db),
) -> EvidenceResponse:
    """Attach evidence. Closed once the dispute is resolved."""
    evidence = await dispute_service.add_evidence(db, dispute_id, user, data)
    return EvidenceResponse.model_validate(evidence)
