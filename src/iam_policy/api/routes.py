# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Body, Depends, Query, Request, Response, status
from fastapi.responses import PlainTextResponse

from iam_policy.api.schemas import ErrorResponse, RevokeRequest
from iam_policy.engine import ActionProposal, PolicyEngine, ProposalResult, ReplayResult
from iam_policy.entities.models import (
    Agent,
    AgentDraft,
    AgentPatch,
    KeyDraft,
    KeyPatch,
    PolicyBoundKey,
)
from iam_policy.errors import AgentNotFoundError, KeyNotFoundError, PolicyNotFoundError
from iam_policy.policy.models import Policy, PolicyDraft, PolicyPatch
from iam_policy.recorder.models import ExecutionFilter, ExecutionLog
from iam_policy.stats import DashboardStats
from iam_policy.types import ActionType, ExecutionResult

NOT_FOUND: dict[int | str, dict[str, Any]] = {404: {"model": ErrorResponse}}
CONFLICT: dict[int | str, dict[str, Any]] = {409: {"model": ErrorResponse}}

router = APIRouter()


def get_engine(request: Request) -> PolicyEngine:
    """Dependency that returns the application's PolicyEngine."""
    return request.app.state.engine


# ─── Dashboard ────────────────────────────────────────────────────────────────


@router.get("/stats", response_model=DashboardStats)
async def get_stats(engine: PolicyEngine = Depends(get_engine)) -> DashboardStats:
    return await engine.stats()


# ─── Policies ─────────────────────────────────────────────────────────────────


@router.get("/policies", response_model=list[Policy])
async def list_policies(engine: PolicyEngine = Depends(get_engine)) -> list[Policy]:
    return await engine.policies.list()


@router.post("/policies", response_model=Policy, status_code=status.HTTP_201_CREATED)
async def create_policy(
    body: PolicyDraft,
    engine: PolicyEngine = Depends(get_engine),
) -> Policy:
    return await engine.create_policy(body)


@router.get("/policies/{policy_id}", response_model=Policy, responses=NOT_FOUND)
async def get_policy(policy_id: str, engine: PolicyEngine = Depends(get_engine)) -> Policy:
    return await engine.policies.get(policy_id)


@router.patch("/policies/{policy_id}", response_model=Policy, responses={**NOT_FOUND, **CONFLICT})
async def edit_policy(
    policy_id: str,
    body: PolicyPatch,
    engine: PolicyEngine = Depends(get_engine),
) -> Policy:
    return await engine.edit_policy(policy_id, body)


@router.delete(
    "/policies/{policy_id}", status_code=status.HTTP_204_NO_CONTENT, responses=NOT_FOUND
)
async def delete_policy(policy_id: str, engine: PolicyEngine = Depends(get_engine)) -> Response:
    if not await engine.delete_policy(policy_id):
        raise PolicyNotFoundError(policy_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/policies/{policy_id}/versions", response_model=list[Policy], responses=NOT_FOUND)
async def list_policy_versions(
    policy_id: str,
    engine: PolicyEngine = Depends(get_engine),
) -> list[Policy]:
    return await engine.policies.history(policy_id)


@router.post("/policies/{policy_id}/revoke", response_model=Policy, responses=NOT_FOUND)
async def revoke_policy(
    policy_id: str,
    body: RevokeRequest | None = Body(default=None),
    engine: PolicyEngine = Depends(get_engine),
) -> Policy:
    reason = body.reason if body is not None else RevokeRequest().reason
    return await engine.revoke_policy(policy_id, reason)


# ─── Keys ─────────────────────────────────────────────────────────────────────


@router.get("/keys", response_model=list[PolicyBoundKey])
async def list_keys(engine: PolicyEngine = Depends(get_engine)) -> list[PolicyBoundKey]:
    return await engine.keys.list()


@router.post("/keys", response_model=PolicyBoundKey, status_code=status.HTTP_201_CREATED)
async def create_key(
    body: KeyDraft,
    engine: PolicyEngine = Depends(get_engine),
) -> PolicyBoundKey:
    return await engine.create_key(body)


@router.get("/keys/{key_id}", response_model=PolicyBoundKey, responses=NOT_FOUND)
async def get_key(key_id: str, engine: PolicyEngine = Depends(get_engine)) -> PolicyBoundKey:
    return await engine.keys.get(key_id)


@router.patch("/keys/{key_id}", response_model=PolicyBoundKey, responses={**NOT_FOUND, **CONFLICT})
async def update_key(
    key_id: str,
    body: KeyPatch,
    engine: PolicyEngine = Depends(get_engine),
) -> PolicyBoundKey:
    return await engine.update_key(key_id, body)


@router.delete("/keys/{key_id}", status_code=status.HTTP_204_NO_CONTENT, responses=NOT_FOUND)
async def delete_key(key_id: str, engine: PolicyEngine = Depends(get_engine)) -> Response:
    if not await engine.keys.delete(key_id):
        raise KeyNotFoundError(key_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/keys/{key_id}/revoke", response_model=PolicyBoundKey, responses=NOT_FOUND)
async def revoke_key(
    key_id: str,
    body: RevokeRequest | None = Body(default=None),
    engine: PolicyEngine = Depends(get_engine),
) -> PolicyBoundKey:
    reason = body.reason if body is not None else RevokeRequest().reason
    return await engine.revoke_key(key_id, reason)


# ─── Agents ───────────────────────────────────────────────────────────────────


@router.get("/agents", response_model=list[Agent])
async def list_agents(engine: PolicyEngine = Depends(get_engine)) -> list[Agent]:
    return await engine.agents.list()


@router.post(
    "/agents", response_model=Agent, status_code=status.HTTP_201_CREATED, responses=NOT_FOUND
)
async def create_agent(body: AgentDraft, engine: PolicyEngine = Depends(get_engine)) -> Agent:
    return await engine.create_agent(body)


@router.get("/agents/{agent_id}", response_model=Agent, responses=NOT_FOUND)
async def get_agent(agent_id: str, engine: PolicyEngine = Depends(get_engine)) -> Agent:
    return await engine.agents.get(agent_id)


@router.patch("/agents/{agent_id}", response_model=Agent, responses={**NOT_FOUND, **CONFLICT})
async def update_agent(
    agent_id: str,
    body: AgentPatch,
    engine: PolicyEngine = Depends(get_engine),
) -> Agent:
    return await engine.update_agent(agent_id, body)


@router.delete("/agents/{agent_id}", status_code=status.HTTP_204_NO_CONTENT, responses=NOT_FOUND)
async def delete_agent(agent_id: str, engine: PolicyEngine = Depends(get_engine)) -> Response:
    if not await engine.agents.delete(agent_id):
        raise AgentNotFoundError(agent_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ─── Executions ───────────────────────────────────────────────────────────────
# Fixed paths are declared before /executions/{execution_id}.


@router.get("/executions", response_model=list[ExecutionLog])
async def list_executions(
    agent_id: str | None = Query(default=None, alias="agentId"),
    policy_id: str | None = Query(default=None, alias="policyId"),
    result: ExecutionResult | None = Query(default=None),
    action_type: ActionType | None = Query(default=None, alias="actionType"),
    search: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1),
    offset: int = Query(default=0, ge=0),
    engine: PolicyEngine = Depends(get_engine),
) -> list[ExecutionLog]:
    return await engine.list_executions(
        ExecutionFilter(
            agent_id=agent_id,
            policy_id=policy_id,
            result=result,
            action_type=action_type,
            search=search,
            limit=limit,
            offset=offset,
        )
    )


@router.post(
    "/executions",
    response_model=ProposalResult,
    status_code=status.HTTP_201_CREATED,
    responses={**NOT_FOUND, **CONFLICT},
)
async def propose_action(
    body: ActionProposal,
    engine: PolicyEngine = Depends(get_engine),
) -> ProposalResult:
    return await engine.propose(body)


@router.get("/executions/verify")
async def verify_executions(engine: PolicyEngine = Depends(get_engine)) -> dict[str, Any]:
    result = await engine.verify_executions()
    return result.model_dump(by_alias=True)


@router.get("/executions/export", response_class=PlainTextResponse)
async def export_executions(
    export_format: Literal["json", "csv"] = Query(default="json", alias="format"),
    engine: PolicyEngine = Depends(get_engine),
) -> PlainTextResponse:
    body = await engine.recorder.export(export_format)
    media_type = "text/csv" if export_format == "csv" else "application/json"
    return PlainTextResponse(body, media_type=media_type)


@router.get("/executions/{execution_id}", response_model=ExecutionLog, responses=NOT_FOUND)
async def get_execution(
    execution_id: str,
    engine: PolicyEngine = Depends(get_engine),
) -> ExecutionLog:
    return await engine.recorder.get(execution_id)


@router.post(
    "/executions/{execution_id}/replay",
    response_model=ReplayResult,
    status_code=status.HTTP_201_CREATED,
    responses=NOT_FOUND,
)
async def replay_execution(
    execution_id: str,
    engine: PolicyEngine = Depends(get_engine),
) -> ReplayResult:
    return await engine.replay(execution_id)
