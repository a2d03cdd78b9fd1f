"""API routes for the problem board."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from dispatch_dashboard.core.auth import TenantContext, get_tenant_context, require_writer
from dispatch_dashboard.models.dispatch import IssueType, ProblemBoardResponse, Severity
from dispatch_dashboard.routers.errors import http_error
from dispatch_dashboard.services.problem_board import problem_board
from dispatch_dashboard.services.workflows import dispatch_workflows

router = APIRouter(prefix="/problems", tags=["problems"])


@router.get("", response_model=ProblemBoardResponse)
def get_problem_board(
    q: Optional[str] = Query(default=None),
    issue_type: Optional[IssueType] = Query(default=None),
    severity: Optional[Severity] = Query(default=None),
    only_critical: bool = Query(default=False),
    context: TenantContext = Depends(get_tenant_context),
):
    try:
        return problem_board.board(
            context.tenant_id,
            search=q,
            issue_type=issue_type,
            severity=severity,
            only_critical=only_critical,
        )
    except Exception as exc:
        raise http_error(exc, "Failed to load problem board") from exc


@router.post("/{load_id}/resolve")
def resolve_problem(
    load_id: int,
    context: TenantContext = Depends(require_writer),
):
    try:
        return dispatch_workflows.set_problem_flag(context.tenant_id, load_id, False, actor=context.actor)
    except Exception as exc:
        raise http_error(exc, "Failed to resolve problem", load_id=load_id) from exc


@router.post("/{load_id}/escalate")
def escalate_problem(
    load_id: int,
    context: TenantContext = Depends(require_writer),
):
    try:
        return problem_board.escalate(context.tenant_id, load_id, actor=context.actor)
    except Exception as exc:
        raise http_error(exc, "Failed to escalate problem", load_id=load_id) from exc
