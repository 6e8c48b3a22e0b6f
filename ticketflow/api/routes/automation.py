from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from ticketflow.automation.models import (
    AutomationExecution,
    AutomationRule,
    AutomationStats,
    AutomationTrigger,
    RuleValidationError,
)
from ticketflow.automation.service import RuleNotFoundError
from ticketflow.dependencies.services import AutomationServiceDep, StaffUser, SupervisorUser

router = APIRouter(prefix="/automation", tags=["automation"])


class ConditionModel(BaseModel):
    field: str
    operator: str
    value: Any = None


class ActionModel(BaseModel):
    type: str
    params: dict[str, Any] = Field(default_factory=dict)


class RuleModel(BaseModel):
    id: str
    name: str
    description: str | None = None
    trigger: AutomationTrigger
    conditions: list[ConditionModel]
    actions: list[ActionModel]
    is_active: bool
    priority: int
    created_by_id: str | None = None
    created_at: str
    updated_at: str

    @classmethod
    def from_entity(cls, rule: AutomationRule) -> "RuleModel":
        return cls(
            id=rule.id,
            name=rule.name,
            description=rule.description,
            trigger=rule.trigger,
            conditions=[ConditionModel(**condition.to_dict()) for condition in rule.conditions],
            actions=[ActionModel(type=action.type, params=dict(action.params)) for action in rule.actions],
            is_active=rule.is_active,
            priority=rule.priority,
            created_by_id=rule.created_by_id,
            created_at=rule.created_at.isoformat(),
            updated_at=rule.updated_at.isoformat(),
        )


class RuleCreateRequest(BaseModel):
    name: str
    description: str | None = None
    trigger: str
    conditions: list[dict[str, Any]] = Field(default_factory=list)
    actions: list[dict[str, Any]] = Field(default_factory=list)
    is_active: bool = True
    priority: int = 0


class RuleUpdateRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    trigger: str | None = None
    conditions: list[dict[str, Any]] | None = None
    actions: list[dict[str, Any]] | None = None
    is_active: bool | None = None
    priority: int | None = None


class ExecutionModel(BaseModel):
    id: str
    rule_id: str
    ticket_id: str
    success: bool
    error: str | None = None
    details: dict[str, Any] | None = None
    executed_at: str

    @classmethod
    def from_entity(cls, execution: AutomationExecution) -> "ExecutionModel":
        return cls(
            id=execution.id,
            rule_id=execution.rule_id,
            ticket_id=execution.ticket_id,
            success=execution.success,
            error=execution.error,
            details=dict(execution.details) if execution.details is not None else None,
            executed_at=execution.executed_at.isoformat(),
        )


class ExecutionPageModel(BaseModel):
    items: list[ExecutionModel]
    total: int
    limit: int
    offset: int


class StatsModel(BaseModel):
    total_rules: int
    active_rules: int
    today_executions: int
    week_executions: int
    auto_assign_count: int
    notification_count: int

    @classmethod
    def from_entity(cls, stats: AutomationStats) -> "StatsModel":
        return cls(
            total_rules=stats.total_rules,
            active_rules=stats.active_rules,
            today_executions=stats.today_executions,
            week_executions=stats.week_executions,
            auto_assign_count=stats.auto_assign_count,
            notification_count=stats.notification_count,
        )


@router.get("/rules", response_model=list[RuleModel])
async def list_rules(
    service: AutomationServiceDep,
    _: StaffUser,
    include_inactive: bool = False,
) -> list[RuleModel]:
    rules = await service.list_rules(include_inactive=include_inactive)
    return [RuleModel.from_entity(rule) for rule in rules]


@router.get("/rules/{rule_id}", response_model=RuleModel)
async def get_rule(rule_id: str, service: AutomationServiceDep, _: StaffUser) -> RuleModel:
    try:
        rule = await service.get_rule(rule_id)
    except RuleNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return RuleModel.from_entity(rule)


@router.post("/rules", response_model=RuleModel, status_code=201)
async def create_rule(
    payload: RuleCreateRequest,
    service: AutomationServiceDep,
    user: SupervisorUser,
) -> RuleModel:
    try:
        rule = await service.create_rule(
            name=payload.name,
            description=payload.description,
            trigger=payload.trigger,
            conditions=payload.conditions,
            actions=payload.actions,
            is_active=payload.is_active,
            priority=payload.priority,
            created_by_id=user.id,
        )
    except RuleValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return RuleModel.from_entity(rule)


@router.put("/rules/{rule_id}", response_model=RuleModel)
async def update_rule(
    rule_id: str,
    payload: RuleUpdateRequest,
    service: AutomationServiceDep,
    _: SupervisorUser,
) -> RuleModel:
    try:
        rule = await service.update_rule(rule_id, payload.model_dump(exclude_unset=True))
    except RuleNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except RuleValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return RuleModel.from_entity(rule)


@router.delete("/rules/{rule_id}", status_code=204)
async def delete_rule(rule_id: str, service: AutomationServiceDep, _: SupervisorUser) -> None:
    try:
        await service.delete_rule(rule_id)
    except RuleNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.put("/rules/{rule_id}/toggle", response_model=RuleModel)
async def toggle_rule(rule_id: str, service: AutomationServiceDep, _: SupervisorUser) -> RuleModel:
    try:
        rule = await service.toggle_rule(rule_id)
    except RuleNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return RuleModel.from_entity(rule)


@router.get("/stats", response_model=StatsModel)
async def get_stats(service: AutomationServiceDep, _: StaffUser) -> StatsModel:
    return StatsModel.from_entity(await service.get_stats())


@router.get("/executions", response_model=ExecutionPageModel)
async def list_executions(
    service: AutomationServiceDep,
    _: StaffUser,
    rule_id: str | None = None,
    ticket_id: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> ExecutionPageModel:
    page = await service.get_executions(rule_id=rule_id, ticket_id=ticket_id, limit=limit, offset=offset)
    return ExecutionPageModel(
        items=[ExecutionModel.from_entity(item) for item in page.items],
        total=page.total,
        limit=limit,
        offset=offset,
    )
