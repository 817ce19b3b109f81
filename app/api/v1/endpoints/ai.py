from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.rate_limit import AI_LIMIT, limiter
from app.models.user import User
from app.schemas.ai import AiAnalysis, AnalyzeRequest
from app.schemas.responses import SuccessResponse
from app.services.bill_analysis_service import BillAnalysisService

router = APIRouter()


@router.post("/analyze-medical-bill", response_model=SuccessResponse[AiAnalysis])
@limiter.limit(AI_LIMIT)
async def analyze_medical_bill(
    request: Request,
    analyze_in: AnalyzeRequest,
    current_user: User = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Review one stored bill document for errors and overcharges.
    The result is not saved; use PUT /medical-bills/{id}/analysis for that.
    """
    analysis = await BillAnalysisService.analyze(
        db, current_user.id, analyze_in.storage_key, analyze_in.filename
    )
    return SuccessResponse(data=analysis, message="Bill analyzed")
