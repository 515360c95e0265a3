from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from dealdesk.api.auth import get_current_user_id
from dealdesk.api.dependencies import get_db_service, get_research_pipeline
from dealdesk.models.research import ResearchRequest, ResearchResult, ResearchUsage
from dealdesk.pipeline.research import (
    InvalidTickerError, QuotaExhaustedError, ResearchPipeline, TickerNotFoundError, research_usage,
)
from dealdesk.services.db_service import DBService, UsageConflictError

router = APIRouter(prefix="/api/research", tags=["research"])


@router.post("/analyze", response_model=ResearchResult)
async def analyze_company(
    body: ResearchRequest,
    user_id: str = Depends(get_current_user_id),
    pipeline: ResearchPipeline = Depends(get_research_pipeline),
):
    """Research brief and comparables for a listed company. Consumes one use of the quota."""
    try:
        return await pipeline.run(user_id, body.ticker)
    except QuotaExhaustedError as e:
        return JSONResponse(
            status_code=403,
            content={"error": str(e), "code": "quota_exhausted", "remaining": 0},
        )
    except InvalidTickerError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TickerNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UsageConflictError:
        raise HTTPException(status_code=409, detail="Failed to update usage quota. Please try again.")


@router.get("/usage", response_model=ResearchUsage)
async def get_usage(
    user_id: str = Depends(get_current_user_id),
    db: DBService = Depends(get_db_service),
):
    return research_usage(db, user_id)


@router.get("/reports", response_model=list[dict])
async def list_reports(
    user_id: str = Depends(get_current_user_id),
    db: DBService = Depends(get_db_service),
):
    """The caller's saved research reports (summary only)."""
    return db.list_company_reports(user_id)
