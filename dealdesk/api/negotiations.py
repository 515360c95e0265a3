from fastapi import APIRouter, Depends, HTTPException, Query

from dealdesk.api.auth import get_current_user_id
from dealdesk.api.dependencies import get_negotiation_workflow
from dealdesk.models.negotiation import (
    ApprovalRequest, ApprovalResponse, ArchiveRequest, CreateOrUpdateRequest, CreateOrUpdateResponse,
    GenerateRequest, Negotiation, NegotiationHistory, NegotiationResults,
)
from dealdesk.negotiation.workflow import InvalidTransitionError
from dealdesk.pipeline.negotiation import (
    ExternalSendBlockedError, NegotiationNotFoundError, NegotiationWorkflow,
)
from dealdesk.services.db_service import RevisionConflictError, UsageConflictError

router = APIRouter(prefix="/api/negotiations", tags=["negotiations"])


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, ExternalSendBlockedError):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, NegotiationNotFoundError):
        return HTTPException(status_code=404, detail="Negotiation not found")
    return HTTPException(status_code=409, detail=str(e))


_WORKFLOW_ERRORS = (
    ExternalSendBlockedError, NegotiationNotFoundError, InvalidTransitionError,
    RevisionConflictError, UsageConflictError,
)


@router.post("/create-or-update", response_model=CreateOrUpdateResponse)
async def create_or_update(
    body: CreateOrUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    workflow: NegotiationWorkflow = Depends(get_negotiation_workflow),
):
    """Create a negotiation, or store a new input revision on an existing one."""
    try:
        return workflow.create_or_update(user_id, body)
    except _WORKFLOW_ERRORS as e:
        raise _http_error(e)


@router.post("/generate", response_model=NegotiationResults)
async def generate(
    body: GenerateRequest,
    user_id: str = Depends(get_current_user_id),
    workflow: NegotiationWorkflow = Depends(get_negotiation_workflow),
):
    """Generate offers, playbook, memo and draft LOI as a new revision."""
    try:
        return workflow.generate(user_id, body)
    except _WORKFLOW_ERRORS as e:
        raise _http_error(e)


@router.post("/approve", response_model=ApprovalResponse)
async def approve(
    body: ApprovalRequest,
    user_id: str = Depends(get_current_user_id),
    workflow: NegotiationWorkflow = Depends(get_negotiation_workflow),
):
    try:
        return workflow.decide(user_id, body)
    except _WORKFLOW_ERRORS as e:
        raise _http_error(e)


@router.post("/archive", response_model=Negotiation)
async def archive(
    body: ArchiveRequest,
    user_id: str = Depends(get_current_user_id),
    workflow: NegotiationWorkflow = Depends(get_negotiation_workflow),
):
    try:
        return workflow.archive(user_id, body)
    except _WORKFLOW_ERRORS as e:
        raise _http_error(e)


@router.get("/history", response_model=NegotiationHistory)
async def history(
    negotiation_id: str = Query(..., min_length=1),
    user_id: str = Depends(get_current_user_id),
    workflow: NegotiationWorkflow = Depends(get_negotiation_workflow),
):
    """Revisions and approval decisions, newest first."""
    try:
        return workflow.history(user_id, negotiation_id)
    except NegotiationNotFoundError as e:
        raise _http_error(e)


@router.get("/list", response_model=list[Negotiation])
async def list_negotiations(
    user_id: str = Depends(get_current_user_id),
    workflow: NegotiationWorkflow = Depends(get_negotiation_workflow),
):
    return workflow.list_for_user(user_id)
