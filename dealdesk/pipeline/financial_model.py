import logging
import time
from datetime import datetime, timezone

from dealdesk.models.financial import (
    FinancialAssumptions, FinancialModelRequest, FinancialModelResult, FinancialModelRun, Provenance,
)
from dealdesk.modelling.csv_parser import CSVParseError, parse_historical_csv
from dealdesk.modelling.dcf import InvalidAssumptionsError, compute_dcf
from dealdesk.services.db_service import DBService

logger = logging.getLogger(__name__)

AGENT_VERSION = "v1.0.0"


def run_financial_model(db: DBService, user_id: str, request: FinancialModelRequest) -> FinancialModelRun:
    """Parse the uploaded historicals, run the DCF and persist the run.

    The run row is created in ``parsing`` and moves to ``modelling`` once the CSV
    is read. Parse and assumption errors mark the run ``failed`` before they are
    re-raised to the caller.
    """
    start = time.time()
    run_id = db.create_run(user_id, request, status="parsing")
    logger.info(f"=== Financial model run {run_id} started for {request.ticker} ===")

    try:
        historical_rows = parse_historical_csv(request.csv_content)
    except CSVParseError as e:
        logger.error(f"Run {run_id}: CSV parse failed: {e}")
        db.fail_run(run_id, str(e))
        raise

    db.update_run_status(run_id, "modelling")
    assumptions = request.assumptions or FinancialAssumptions()

    try:
        output = compute_dcf(historical_rows, assumptions)
    except InvalidAssumptionsError as e:
        logger.error(f"Run {run_id}: invalid assumptions: {e}")
        db.fail_run(run_id, str(e))
        raise

    result = FinancialModelResult(
        income_table=historical_rows,
        forecasted_income=output.forecasted_income,
        assumptions=assumptions,
        dcf=output.dcf,
        checks=output.checks,
        provenance=Provenance(
            ticker=request.ticker,
            company_name=request.company_name,
            generated_at=datetime.now(timezone.utc),
            agent_version=AGENT_VERSION,
        ),
    )
    db.complete_run(run_id, result)
    db.add_model_audit(run_id, notes="Deterministic DCF calculation completed")

    duration_ms = (time.time() - start) * 1000
    logger.info(
        f"=== Financial model run {run_id} done in {duration_ms:.0f}ms: "
        f"EV=${output.dcf.enterprise_value:,.0f}, warnings={len(output.checks.warnings)} ==="
    )
    return db.get_run(run_id)
