"""Pydantic request/response schemas for the accelerator API."""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from accelerator.models import AnswerType, ItemStatus, ReadinessType, Role

WorkItemKind = Literal["task", "initiative", "roadblock"]


def _check_status(value: int | None) -> int | None:
    if value is not None and value not in {s.value for s in ItemStatus}:
        raise ValueError(f"status must be one of {[s.value for s in ItemStatus]}")
    return value


# ---------------------------------------------------------------------------
# Startups
# ---------------------------------------------------------------------------


class CapsuleProposalIn(BaseModel):
    title: str | None = None
    description: str | None = None
    problem_statement: str | None = None
    target_market: str | None = None
    solution_description: str | None = None
    objectives: str | None = None
    scope: str | None = None
    methodology: str | None = None


class CapsuleProposalOut(BaseModel):
    id: int
    title: str
    description: str
    problem_statement: str
    target_market: str
    solution_description: str
    objectives: str
    scope: str
    methodology: str


class StartupCreate(BaseModel):
    name: str = Field(min_length=1, max_length=300)
    user_id: int | None = None
    capsule_proposal: CapsuleProposalIn | None = None


class UserCreate(BaseModel):
    email: str = Field(min_length=3, max_length=300)
    first_name: str = ""
    last_name: str = ""
    role: Role = Role.STARTUP


class WaitlistRequest(BaseModel):
    message: str = ""


class StartupOut(BaseModel):
    id: int
    name: str
    user_id: int | None = None
    qualification_status: str
    waitlist_message: str = ""
    created_at: str | None = None


class ReadinessLevelOut(BaseModel):
    id: int
    startup_id: int
    readiness_type: str
    readiness_level_id: int
    level: int
    name: str


class StartupDetailOut(StartupOut):
    capsule_proposal: CapsuleProposalOut | None = None
    readiness_levels: list[ReadinessLevelOut] = []


class GatingOut(BaseModel):
    allow_rnas: bool
    allow_tasks: bool
    all_dimensions_have_rna: bool


# ---------------------------------------------------------------------------
# Questionnaires and readiness
# ---------------------------------------------------------------------------


class UratAnswerIn(BaseModel):
    question_id: int
    response: str = ""
    score: int = Field(default=0, ge=0)


class UratAnswersIn(BaseModel):
    answers: list[UratAnswerIn]


class UratAnswerOut(BaseModel):
    id: int
    startup_id: int
    question_id: int
    readiness_type: str
    response: str
    score: int


class UratAnswerUpdate(BaseModel):
    response: str | None = None
    score: int | None = Field(default=None, ge=0)


class CalculatorAnswersIn(BaseModel):
    question_ids: list[int]


class RateDimensionIn(BaseModel):
    readiness_type: ReadinessType
    level: int = Field(ge=1, le=9)


class RankingOut(BaseModel):
    id: int
    name: str
    qualification_status: str
    urat_score: int
    technology_level: int
    total_score: int


class RnaOut(BaseModel):
    id: int
    startup_id: int
    readiness_level_id: int
    readiness_type: str
    level: int
    rna: str
    is_ai_generated: bool


# ---------------------------------------------------------------------------
# Work items
# ---------------------------------------------------------------------------


class WorkItemCreate(BaseModel):
    description: str = ""
    status: int = ItemStatus.NEW.value
    assignee_id: int | None = None
    # task
    priority_number: int | None = None
    readiness_type: ReadinessType | None = None
    target_level_id: int | None = None
    # initiative
    rns_id: int | None = None
    initiative_number: int | None = None
    measures: str | None = None
    targets: str | None = None
    remarks: str | None = None
    # roadblock
    risk_number: int | None = Field(default=None, ge=1, le=5)
    fix: str | None = None

    @field_validator("status")
    @classmethod
    def status_in_range(cls, v: int) -> int:
        return _check_status(v)


class WorkItemUpdate(BaseModel):
    description: str | None = None
    assignee_id: int | None = None
    priority_number: int | None = None
    readiness_type: ReadinessType | None = None
    target_level_id: int | None = None
    initiative_number: int | None = None
    measures: str | None = None
    targets: str | None = None
    remarks: str | None = None
    risk_number: int | None = Field(default=None, ge=1, le=5)
    fix: str | None = None
    clicked_by_mentor: bool | None = None
    clicked_by_startup: bool | None = None
    is_ai_generated: bool | None = None


class StatusChangeIn(BaseModel):
    role: Role
    status: int

    @field_validator("status")
    @classmethod
    def status_in_range(cls, v: int) -> int:
        return _check_status(v)


class WorkItemOut(BaseModel):
    id: int
    kind: str
    startup_id: int
    assignee_id: int | None = None
    description: str
    status: int
    requested_status: int
    approval_status: str
    is_ai_generated: bool
    clicked_by_mentor: bool = False
    clicked_by_startup: bool = False
    priority_number: int | None = None
    readiness_type: str | None = None
    target_level_id: int | None = None
    target_level: int | None = None
    rns_id: int | None = None
    initiative_number: int | None = None
    measures: str | None = None
    targets: str | None = None
    remarks: str | None = None
    risk_number: int | None = None
    fix: str | None = None


class GenerateRequest(BaseModel):
    count: int = Field(default=1, ge=1, le=20)
    rna_ids: list[int] = []
    rns_ids: list[int] = []


class RefineRequest(BaseModel):
    prompt: str = Field(min_length=1)


class ChatMessageOut(BaseModel):
    id: int
    role: str
    content: str
    refined: dict[str, str] = {}
    created_at: str | None = None


# ---------------------------------------------------------------------------
# Assessments
# ---------------------------------------------------------------------------


class AssessmentCreate(BaseModel):
    assessment_type: ReadinessType
    name: str = Field(min_length=1, max_length=300)
    description: str = ""
    answer_type: AnswerType = AnswerType.SHORT_ANSWER


class AssessmentUpdate(BaseModel):
    assessment_type: ReadinessType | None = None
    name: str | None = None
    description: str | None = None
    answer_type: AnswerType | None = None


class AssessmentOut(BaseModel):
    id: int
    assessment_type: str
    name: str
    description: str
    answer_type: int
    answer_type_name: str


class AssignmentOut(BaseModel):
    id: int
    startup_id: int
    assessment_id: int
    is_applicable: bool
    assessment: AssessmentOut


class ReconcileRequest(BaseModel):
    template_ids: list[int]


class ReconcileOut(BaseModel):
    assigned: list[int]
    replaced: list[int]
    skipped: list[int]
