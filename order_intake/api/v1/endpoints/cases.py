from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from temporalio.client import Client as TemporalClient
from temporalio.exceptions import WorkflowAlreadyStartedError

from order_intake.core.database import get_async_session as get_session
from order_intake.core.exceptions import CaseNotFoundError
from order_intake.core.temporal_client import get_temporal_client
from order_intake.schemas.common import ApiResponse
from order_intake.schemas.workflows import (
    ApprovalReceivedRequest,
    CaseStartRequest,
    CaseStartedResponse,
    CaseStateResponse,
    CaseSummary,
    CorrectionsSubmittedRequest,
    FileReuploadedRequest,
    SelectionsSubmittedRequest,
)
from order_intake.services.case_service import CaseService
from order_intake.services.order_workflow_service import OrderWorkflowService
from order_intake.utils.logging import get_logger
from order_intake.utils.responses import create_api_response, create_error_detail

LOGGER = get_logger(__name__)

router = APIRouter()


async def get_order_workflow_service(
    temporal_client: Annotated[TemporalClient, Depends(get_temporal_client)]
) -> OrderWorkflowService:
    return OrderWorkflowService(temporal_client)


async def get_case_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> CaseService:
    return CaseService(db_session)


def _not_found(request: Request, error: Exception) -> HTTPException:
    error_detail = create_error_detail(
        title="Case Not Found",
        status=status.HTTP_404_NOT_FOUND,
        detail=str(error),
        request=request,
    )
    return HTTPException(status_code=404, detail=error_detail.model_dump(mode="json"))


@router.post(
    "/",
    response_model=ApiResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start an order case",
    operation_id="start_case",
)
async def start_case(
    request: Request,
    payload: CaseStartRequest,
    workflow_service: Annotated[OrderWorkflowService, Depends(get_order_workflow_service)] = None,
) -> ApiResponse:
    """Start the processing workflow for an uploaded spreadsheet."""
    body = payload.model_dump(mode="json")
    if not body.get("correlation_id"):
        body["correlation_id"] = getattr(request.state, "correlation_id", None)

    try:
        result = await workflow_service.start_case(body)
    except WorkflowAlreadyStartedError as e:
        error_detail = create_error_detail(
            title="Case Already Started",
            status=status.HTTP_409_CONFLICT,
            detail=f"Case {payload.case_id} is already being processed",
            request=request,
        )
        raise HTTPException(status_code=409, detail=error_detail.model_dump(mode="json")) from e
    except Exception as e:
        LOGGER.error(f"Failed to start case {payload.case_id}: {e}", exc_info=True)
        error_detail = create_error_detail(
            title="Case Start Failed",
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Case {payload.case_id}: {e}",
            request=request,
        )
        raise HTTPException(status_code=500, detail=error_detail.model_dump(mode="json"))

    return create_api_response(
        data=CaseStartedResponse(**result),
        message="Case accepted for processing",
        request=request,
    )


async def _signal(
    request: Request,
    workflow_service: OrderWorkflowService,
    case_id: str,
    signal: str,
    payload: Dict[str, Any],
) -> Dict[str, Any]:
    stamp = "approved_at" if signal == "approval_received" else "submitted_at"
    if not payload.get(stamp):
        payload[stamp] = datetime.now(timezone.utc).isoformat()
    try:
        await workflow_service.send_signal(case_id, signal, payload)
    except CaseNotFoundError as e:
        raise _not_found(request, e)
    return create_api_response(
        data={"case_id": case_id, "signal": signal},
        message=f"{signal} delivered",
        request=request,
    )


@router.post(
    "/{case_id}/file_reuploaded",
    response_model=ApiResponse,
    status_code=status.HTTP_202_ACCEPTED,
    operation_id="signal_file_reuploaded",
)
async def file_reuploaded(
    request: Request,
    case_id: str,
    payload: FileReuploadedRequest,
    workflow_service: Annotated[OrderWorkflowService, Depends(get_order_workflow_service)] = None,
) -> ApiResponse:
    body = payload.model_dump(mode="json")
    if not body.get("correlation_id"):
        body["correlation_id"] = getattr(request.state, "correlation_id", None)
    return await _signal(request, workflow_service, case_id, "file_reuploaded", body)


@router.post(
    "/{case_id}/corrections_submitted",
    response_model=ApiResponse,
    status_code=status.HTTP_202_ACCEPTED,
    operation_id="signal_corrections_submitted",
)
async def corrections_submitted(
    request: Request,
    case_id: str,
    payload: CorrectionsSubmittedRequest,
    workflow_service: Annotated[OrderWorkflowService, Depends(get_order_workflow_service)] = None,
) -> ApiResponse:
    return await _signal(request, workflow_service, case_id, "corrections_submitted", payload.model_dump(mode="json"))


@router.post(
    "/{case_id}/selections_submitted",
    response_model=ApiResponse,
    status_code=status.HTTP_202_ACCEPTED,
    operation_id="signal_selections_submitted",
)
async def selections_submitted(
    request: Request,
    case_id: str,
    payload: SelectionsSubmittedRequest,
    workflow_service: Annotated[OrderWorkflowService, Depends(get_order_workflow_service)] = None,
) -> ApiResponse:
    return await _signal(request, workflow_service, case_id, "selections_submitted", payload.model_dump(mode="json"))


@router.post(
    "/{case_id}/approval_received",
    response_model=ApiResponse,
    status_code=status.HTTP_202_ACCEPTED,
    operation_id="signal_approval_received",
)
async def approval_received(
    request: Request,
    case_id: str,
    payload: ApprovalReceivedRequest,
    workflow_service: Annotated[OrderWorkflowService, Depends(get_order_workflow_service)] = None,
) -> ApiResponse:
    return await _signal(request, workflow_service, case_id, "approval_received", payload.model_dump(mode="json"))


@router.get(
    "/{case_id}/state",
    response_model=ApiResponse,
    summary="Current state of a case",
    operation_id="get_case_state",
)
async def get_case_state(
    request: Request,
    case_id: str,
    workflow_service: Annotated[OrderWorkflowService, Depends(get_order_workflow_service)] = None,
) -> ApiResponse:
    try:
        state = await workflow_service.get_state(case_id)
    except CaseNotFoundError as e:
        raise _not_found(request, e)

    data = CaseStateResponse(
        case_id=case_id,
        currentStep=state.get("currentStep"),
        status=state.get("status", "unknown"),
        lastUpdated=state.get("lastUpdated"),
        errors=state.get("errors", []),
    )
    return create_api_response(data=data.model_dump(mode="json", by_alias=True), request=request)


@router.get(
    "/",
    response_model=ApiResponse,
    summary="List cases",
    operation_id="list_cases",
)
async def list_cases(
    request: Request,
    tenant_id: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None),
    case_status: Optional[str] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    case_service: Annotated[CaseService, Depends(get_case_service)] = None,
) -> ApiResponse:
    cases = await case_service.list_cases(
        tenant_id=tenant_id, user_id=user_id, status=case_status, skip=offset, limit=limit
    )
    summaries = [CaseSummary(**case.model_dump(mode="json", include=set(CaseSummary.model_fields))) for case in cases]
    return create_api_response(
        data={"cases": [s.model_dump(mode="json") for s in summaries], "total": len(summaries)},
        request=request,
    )
