"""Reconciliation API router."""

from uuid import UUID

from fastapi import APIRouter, Depends, Request, status

from bankrec.auth import get_actor_id
from bankrec.config import settings
from bankrec.database import get_session_maker
from bankrec.logger import get_logger
from bankrec.schemas.reconciliation import (
    AutoMatchRequest,
    AutoMatchResponse,
    ManualMatchRequest,
    MatchStatisticsResponse,
    MatchSuggestionListResponse,
    MatchSuggestionResponse,
    MultiTransactionMatchListResponse,
    MultiTransactionMatchResponse,
    ReconciliationMatchResponse,
    ReconciliationProgressResponse,
)
from bankrec.services.auto_matching import AutoMatchOptions, ReconciliationWorkflow
from bankrec.services.errors import MatchConflictError, NotFoundError
from bankrec.services.ledger_store import ReconciliationStore
from bankrec.services.scoring import load_matching_config
from bankrec.utils.exceptions import raise_conflict, raise_gateway_timeout, raise_not_found

router = APIRouter(prefix="/reconciliation", tags=["reconciliation"])
logger = get_logger(__name__)


def get_workflow(request: Request) -> ReconciliationWorkflow:
    """Return the app-wide workflow so statement locks are shared across requests."""
    workflow = getattr(request.app.state, "reconciliation_workflow", None)
    if workflow is None:
        workflow = ReconciliationWorkflow(
            ReconciliationStore(get_session_maker()),
            load_matching_config(settings.reconciliation_config_path),
            timeout=settings.reconciliation_timeout_seconds,
        )
        request.app.state.reconciliation_workflow = workflow
    return workflow


@router.get("/statements/{statement_id}/suggestions", response_model=MatchSuggestionListResponse)
async def list_suggestions(
    statement_id: UUID,
    workflow: ReconciliationWorkflow = Depends(get_workflow),
) -> MatchSuggestionListResponse:
    try:
        suggestions = await workflow.get_enhanced_suggested_matches(statement_id)
    except NotFoundError as exc:
        raise_not_found(str(exc), cause=exc)
    except TimeoutError as exc:
        raise_gateway_timeout("Reconciliation run timed out", cause=exc)

    items = [MatchSuggestionResponse.model_validate(suggestion) for suggestion in suggestions]
    return MatchSuggestionListResponse(items=items, total=len(items))


@router.get("/statements/{statement_id}/multi-matches", response_model=MultiTransactionMatchListResponse)
async def list_multi_matches(
    statement_id: UUID,
    workflow: ReconciliationWorkflow = Depends(get_workflow),
) -> MultiTransactionMatchListResponse:
    try:
        matches = await workflow.get_multi_transaction_matches(statement_id)
    except NotFoundError as exc:
        raise_not_found(str(exc), cause=exc)
    except TimeoutError as exc:
        raise_gateway_timeout("Reconciliation run timed out", cause=exc)

    items = [MultiTransactionMatchResponse.model_validate(match) for match in matches]
    return MultiTransactionMatchListResponse(items=items, total=len(items))


@router.get("/statements/{statement_id}/statistics", response_model=MatchStatisticsResponse)
async def get_statistics(
    statement_id: UUID,
    workflow: ReconciliationWorkflow = Depends(get_workflow),
) -> MatchStatisticsResponse:
    try:
        stats = await workflow.get_enhanced_match_statistics(statement_id)
    except NotFoundError as exc:
        raise_not_found(str(exc), cause=exc)
    except TimeoutError as exc:
        raise_gateway_timeout("Reconciliation run timed out", cause=exc)
    return MatchStatisticsResponse.model_validate(stats)


@router.get("/statements/{statement_id}/progress", response_model=ReconciliationProgressResponse)
async def get_progress(
    statement_id: UUID,
    workflow: ReconciliationWorkflow = Depends(get_workflow),
) -> ReconciliationProgressResponse:
    try:
        progress = await workflow.get_reconciliation_stats(statement_id)
    except NotFoundError as exc:
        raise_not_found(str(exc), cause=exc)
    return ReconciliationProgressResponse.model_validate(progress)


@router.post("/statements/{statement_id}/auto-match", response_model=AutoMatchResponse)
async def auto_match(
    statement_id: UUID,
    payload: AutoMatchRequest | None = None,
    workflow: ReconciliationWorkflow = Depends(get_workflow),
    actor_id: str = Depends(get_actor_id),
) -> AutoMatchResponse:
    options = AutoMatchOptions(**(payload or AutoMatchRequest()).model_dump())
    try:
        result = await workflow.auto_match_transactions(statement_id, actor_id, options)
    except NotFoundError as exc:
        raise_not_found(str(exc), cause=exc)
    except TimeoutError as exc:
        raise_gateway_timeout("Reconciliation run timed out", cause=exc)

    logger.info(
        "Auto-match requested",
        statement_id=str(statement_id),
        actor_id=actor_id,
        matched=result.matched,
        skipped=result.skipped,
    )
    return AutoMatchResponse.model_validate(result)


@router.post(
    "/statements/{statement_id}/matches",
    response_model=ReconciliationMatchResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_manual_match(
    statement_id: UUID,
    payload: ManualMatchRequest,
    workflow: ReconciliationWorkflow = Depends(get_workflow),
    actor_id: str = Depends(get_actor_id),
) -> ReconciliationMatchResponse:
    try:
        match = await workflow.match_transactions(
            statement_id,
            payload.bank_transaction_id,
            payload.candidate_ids,
            actor_id,
            notes=payload.notes,
        )
    except NotFoundError as exc:
        raise_not_found(str(exc), cause=exc)
    except MatchConflictError as exc:
        raise_conflict(str(exc), cause=exc)
    except TimeoutError as exc:
        raise_gateway_timeout("Reconciliation run timed out", cause=exc)
    return ReconciliationMatchResponse.model_validate(match)


@router.delete("/transactions/{bank_txn_id}/match", status_code=status.HTTP_204_NO_CONTENT)
async def delete_match(
    bank_txn_id: UUID,
    workflow: ReconciliationWorkflow = Depends(get_workflow),
    actor_id: str = Depends(get_actor_id),
) -> None:
    try:
        await workflow.unmatch_transaction(bank_txn_id)
    except NotFoundError as exc:
        raise_not_found(str(exc), cause=exc)
    except TimeoutError as exc:
        raise_gateway_timeout("Reconciliation run timed out", cause=exc)
    logger.info("Match removed", bank_txn_id=str(bank_txn_id), actor_id=actor_id)


@router.get("/transactions/{bank_txn_id}/candidates", response_model=MatchSuggestionListResponse)
async def list_candidates(
    bank_txn_id: UUID,
    workflow: ReconciliationWorkflow = Depends(get_workflow),
) -> MatchSuggestionListResponse:
    """Rank every qualifying ledger transaction for one bank line."""
    try:
        suggestions = await workflow.get_candidate_matches(bank_txn_id)
    except NotFoundError as exc:
        raise_not_found(str(exc), cause=exc)
    except TimeoutError as exc:
        raise_gateway_timeout("Reconciliation run timed out", cause=exc)

    items = [MatchSuggestionResponse.model_validate(suggestion) for suggestion in suggestions]
    return MatchSuggestionListResponse(items=items, total=len(items))
