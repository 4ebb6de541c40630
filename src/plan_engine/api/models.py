"""Pydantic models for the HTTP surface (camelCase JSON)."""

from datetime import date, datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from plan_engine.domain.errors import QueueExhaustedError
from plan_engine.domain.metrics import (
    ActivityLevel,
    ComputedTargets,
    Goal,
    Sex,
    UserBiometrics,
)
from plan_engine.domain.operations import (
    OperationStatus,
    OperationType,
    PendingOperation,
    ProcessResult,
)
from plan_engine.domain.plans import PlanRecord


class CamelModel(BaseModel):
    """Base model serializing field names as camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TargetsModel(CamelModel):
    """Computed targets."""

    bmr: int
    tdee: int
    calorie_target: int
    protein_target: int
    water_target: int
    weekly_rate: float
    estimated_weeks: int | None = None
    projected_date: date | None = None
    calorie_floor_applied: bool = False

    @classmethod
    def from_domain(cls, targets: ComputedTargets) -> "TargetsModel":
        return cls(
            bmr=targets.bmr,
            tdee=targets.tdee,
            calorie_target=targets.calorie_target,
            protein_target=targets.protein_target,
            water_target=targets.water_target,
            weekly_rate=targets.weekly_rate,
            estimated_weeks=targets.estimated_weeks,
            projected_date=targets.projected_date,
            calorie_floor_applied=targets.calorie_floor_applied,
        )


class PlanRecordModel(CamelModel):
    """A versioned plan record."""

    id: UUID
    user_id: UUID
    targets: TargetsModel
    computed_at: datetime
    version: int
    previous_targets: TargetsModel | None = None
    has_significant_changes: bool = False

    @classmethod
    def from_domain(cls, record: PlanRecord) -> "PlanRecordModel":
        return cls(
            id=record.id,
            user_id=record.user_id,
            targets=TargetsModel.from_domain(record.targets),
            computed_at=record.computed_at,
            version=record.version,
            previous_targets=(
                TargetsModel.from_domain(record.previous_targets)
                if record.previous_targets
                else None
            ),
            has_significant_changes=record.has_significant_changes(),
        )


class BiometricsModel(CamelModel):
    """Biometrics accepted by the compute endpoint."""

    weight: float = Field(ge=30, le=272)
    height: float = Field(ge=100, le=244)
    age: int = Field(ge=13, le=120)
    sex: Sex
    activity_level: ActivityLevel
    goal: Goal
    target_weight: float | None = Field(default=None, ge=30, le=272)
    weekly_rate_limit: float | None = Field(default=None, ge=0)

    def to_domain(self) -> UserBiometrics:
        return UserBiometrics(
            weight_kg=self.weight,
            height_cm=self.height,
            age=self.age,
            sex=self.sex,
            activity_level=self.activity_level,
            goal=self.goal,
            target_weight_kg=self.target_weight,
            weekly_rate_limit_kg=self.weekly_rate_limit,
        )


class MutationRequest(CamelModel):
    """A profile mutation submitted by the client."""

    type: OperationType
    payload: dict[str, Any]


class PendingOperationModel(CamelModel):
    """A queued mutation."""

    id: UUID
    user_id: UUID
    type: OperationType
    payload: dict[str, Any]
    enqueued_at: datetime
    sequence: int
    retry_count: int
    status: OperationStatus
    next_attempt_at: datetime | None = None
    last_error: str | None = None

    @classmethod
    def from_domain(cls, operation: PendingOperation) -> "PendingOperationModel":
        return cls(
            id=operation.id,
            user_id=operation.user_id,
            type=operation.type,
            payload=operation.payload,
            enqueued_at=operation.enqueued_at,
            sequence=operation.sequence,
            retry_count=operation.retry_count,
            status=operation.status,
            next_attempt_at=operation.next_attempt_at,
            last_error=operation.last_error,
        )


class MutationResponse(CamelModel):
    """Outcome of a submitted mutation."""

    applied: bool
    operation: PendingOperationModel | None = None
    plan: PlanRecordModel | None = None


class SyncFailureModel(CamelModel):
    """A mutation that needs the user's attention."""

    operation: PendingOperationModel
    message: str

    @classmethod
    def from_error(cls, error: QueueExhaustedError) -> "SyncFailureModel":
        return cls(
            operation=PendingOperationModel.from_domain(error.operation),
            message=error.user_message,
        )


class ProcessResultModel(CamelModel):
    """Outcome of an offline queue replay."""

    applied: list[PendingOperationModel]
    retried: list[PendingOperationModel]
    failed: list[SyncFailureModel]
    blocked_users: list[UUID]

    @classmethod
    def from_domain(cls, result: ProcessResult) -> "ProcessResultModel":
        return cls(
            applied=[PendingOperationModel.from_domain(op) for op in result.applied],
            retried=[PendingOperationModel.from_domain(op) for op in result.retried],
            failed=[SyncFailureModel.from_error(err) for err in result.exhausted],
            blocked_users=sorted(result.blocked_users, key=str),
        )
