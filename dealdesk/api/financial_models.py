import json

from fastapi import APIRouter, Depends, HTTPException, UploadFile, File

from dealdesk.api.auth import get_current_user_id
from dealdesk.api.dependencies import get_db_service
from dealdesk.models.financial import (
    DCFComputeRequest, DCFModelOutput, FinancialModelRequest, FinancialModelRun,
    FinancialModelRunSummary, HistoricalFinancialRow,
)
from dealdesk.modelling.csv_parser import CSVParseError, parse_historical_csv, parse_historical_json
from dealdesk.modelling.dcf import InvalidAssumptionsError, compute_dcf
from dealdesk.pipeline.financial_model import run_financial_model
from dealdesk.services.db_service import DBService

router = APIRouter(prefix="/api/financial-models", tags=["financial-models"])


@router.post("", response_model=FinancialModelRun)
async def start_financial_model(
    request: FinancialModelRequest,
    user_id: str = Depends(get_current_user_id),
    db: DBService = Depends(get_db_service),
):
    """Parse historicals, run the DCF and return the completed run."""
    try:
        return run_financial_model(db, user_id, request)
    except CSVParseError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InvalidAssumptionsError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.post("/compute", response_model=DCFModelOutput)
async def compute(
    body: DCFComputeRequest,
    user_id: str = Depends(get_current_user_id),
):
    """Stateless DCF over already-parsed rows."""
    try:
        return compute_dcf(body.historical_rows, body.assumptions)
    except InvalidAssumptionsError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.post("/upload-historicals", response_model=list[HistoricalFinancialRow])
async def upload_historicals(
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
):
    """Parse an uploaded CSV or JSON income statement into historical rows."""
    content = await file.read()
    filename = (file.filename or "").lower()

    try:
        if filename.endswith(".json"):
            return parse_historical_json(json.loads(content))
        elif filename.endswith(".csv"):
            return parse_historical_csv(content.decode("utf-8-sig"))
        else:
            raise HTTPException(
                status_code=400,
                detail="Unsupported file type. Upload .json or .csv",
            )
    except HTTPException:
        raise
    except CSVParseError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise HTTPException(status_code=400, detail=f"Failed to parse file: {e}")


@router.get("", response_model=list[FinancialModelRunSummary])
async def list_financial_models(
    user_id: str = Depends(get_current_user_id),
    db: DBService = Depends(get_db_service),
):
    """The caller's 20 most recent runs."""
    return db.list_runs(user_id)


@router.get("/{run_id}", response_model=FinancialModelRun)
async def get_financial_model(
    run_id: str,
    user_id: str = Depends(get_current_user_id),
    db: DBService = Depends(get_db_service),
):
    run = db.get_run(run_id)
    if not run or run.user_id != user_id:
        raise HTTPException(status_code=404, detail="Run not found")
    return run
