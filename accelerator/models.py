from __future__ import annotations

from datetime import datetime
from enum import Enum, IntEnum

from sqlalchemy import (
    Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class ReadinessType(str, Enum):
    TECHNOLOGY = "Technology"
    MARKET = "Market"
    ACCEPTANCE = "Acceptance"
    REGULATORY = "Regulatory"
    ORGANIZATIONAL = "Organizational"
    INVESTMENT = "Investment"


READINESS_ABBREVIATIONS = {
    ReadinessType.TECHNOLOGY: "TRL",
    ReadinessType.MARKET: "MRL",
    ReadinessType.ACCEPTANCE: "ARL",
    ReadinessType.REGULATORY: "RRL",
    ReadinessType.ORGANIZATIONAL: "ORL",
    ReadinessType.INVESTMENT: "IRL",
}


class QualificationStatus(str, Enum):
    PENDING = "Pending"
    QUALIFIED = "Qualified"
    WAITLISTED = "Waitlisted"
    COMPLETED = "Completed"


class Role(str, Enum):
    STARTUP = "Startup"
    MENTOR = "Mentor"
    MANAGER = "Manager"
    ADMIN = "Admin"


class ApprovalStatus(str, Enum):
    UNCHANGED = "Unchanged"
    PENDING = "Pending"


class ItemStatus(IntEnum):
    NEW = 1
    SCHEDULED = 2
    ON_TRACK = 3
    COMPLETED = 4
    DELAYED = 5
    DISCONTINUED = 6
    LONG_TERM = 7


INACTIVE_STATUSES = (ItemStatus.COMPLETED, ItemStatus.DISCONTINUED)


class AnswerType(IntEnum):
    SHORT_ANSWER = 1
    LONG_ANSWER = 2
    FILE = 3


# ---------------------------------------------------------------------------
# Startup aggregate
# ---------------------------------------------------------------------------


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    first_name: Mapped[str] = mapped_column(String(100), default="")
    last_name: Mapped[str] = mapped_column(String(100), default="")
    email: Mapped[str] = mapped_column(String(300), unique=True, nullable=False)
    role: Mapped[str] = mapped_column(String(20), default=Role.STARTUP.value)


class Startup(Base):
    __tablename__ = "startups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    user_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)
    qualification_status: Mapped[str] = mapped_column(String(20), default=QualificationStatus.PENDING.value)
    waitlist_message: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    user: Mapped[User | None] = relationship("User")
    capsule_proposal: Mapped[CapsuleProposal | None] = relationship(
        "CapsuleProposal", back_populates="startup", uselist=False, cascade="all, delete-orphan",
    )
    urat_answers: Mapped[list[UratQuestionAnswer]] = relationship(
        "UratQuestionAnswer", back_populates="startup", cascade="all, delete-orphan",
    )
    calculator_answers: Mapped[list[CalculatorQuestionAnswer]] = relationship(
        "CalculatorQuestionAnswer", back_populates="startup", cascade="all, delete-orphan",
    )
    readiness_levels: Mapped[list[StartupReadinessLevel]] = relationship(
        "StartupReadinessLevel", back_populates="startup", cascade="all, delete-orphan",
    )
    rnas: Mapped[list[StartupRNA]] = relationship("StartupRNA", back_populates="startup", cascade="all, delete-orphan")
    tasks: Mapped[list[Rns]] = relationship("Rns", back_populates="startup", cascade="all, delete-orphan")
    initiatives: Mapped[list[Initiative]] = relationship(
        "Initiative", back_populates="startup", cascade="all, delete-orphan",
    )
    roadblocks: Mapped[list[Roadblock]] = relationship("Roadblock", back_populates="startup", cascade="all, delete-orphan")
    assessments: Mapped[list[StartupAssessment]] = relationship(
        "StartupAssessment", back_populates="startup", cascade="all, delete-orphan",
    )


class CapsuleProposal(Base):
    """Free-text project description injected as base context into every AI prompt."""
    __tablename__ = "capsule_proposals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    startup_id: Mapped[int] = mapped_column(Integer, ForeignKey("startups.id"), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(300), default="")
    description: Mapped[str] = mapped_column(Text, default="")
    problem_statement: Mapped[str] = mapped_column(Text, default="")
    target_market: Mapped[str] = mapped_column(Text, default="")
    solution_description: Mapped[str] = mapped_column(Text, default="")
    objectives: Mapped[str] = mapped_column(Text, default="")
    scope: Mapped[str] = mapped_column(Text, default="")
    methodology: Mapped[str] = mapped_column(Text, default="")

    startup: Mapped[Startup] = relationship("Startup", back_populates="capsule_proposal")


# ---------------------------------------------------------------------------
# Questionnaires and readiness levels
# ---------------------------------------------------------------------------


class UratQuestion(Base):
    __tablename__ = "urat_questions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    readiness_type: Mapped[str] = mapped_column(String(30), nullable=False)
    question: Mapped[str] = mapped_column(Text, nullable=False)


class UratQuestionAnswer(Base):
    __tablename__ = "urat_question_answers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    startup_id: Mapped[int] = mapped_column(Integer, ForeignKey("startups.id"), nullable=False)
    question_id: Mapped[int] = mapped_column(Integer, ForeignKey("urat_questions.id"), nullable=False)
    response: Mapped[str] = mapped_column(Text, default="")
    score: Mapped[int] = mapped_column(Integer, default=0)

    startup: Mapped[Startup] = relationship("Startup", back_populates="urat_answers")
    question: Mapped[UratQuestion] = relationship("UratQuestion")


class CalculatorQuestion(Base):
    __tablename__ = "calculator_questions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    score: Mapped[int] = mapped_column(Integer, default=0)


class CalculatorQuestionAnswer(Base):
    __tablename__ = "calculator_question_answers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    startup_id: Mapped[int] = mapped_column(Integer, ForeignKey("startups.id"), nullable=False)
    question_id: Mapped[int] = mapped_column(Integer, ForeignKey("calculator_questions.id"), nullable=False)

    startup: Mapped[Startup] = relationship("Startup", back_populates="calculator_answers")
    question: Mapped[CalculatorQuestion] = relationship("CalculatorQuestion")


class ReadinessLevel(Base):
    """Immutable catalog entry: one (readiness type, level 1..9) pair."""
    __tablename__ = "readiness_levels"
    __table_args__ = (UniqueConstraint("readiness_type", "level"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    readiness_type: Mapped[str] = mapped_column(String(30), nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(200), default="")


class StartupReadinessLevel(Base):
    __tablename__ = "startup_readiness_levels"
    __table_args__ = (UniqueConstraint("startup_id", "readiness_type"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    startup_id: Mapped[int] = mapped_column(Integer, ForeignKey("startups.id"), nullable=False)
    readiness_level_id: Mapped[int] = mapped_column(Integer, ForeignKey("readiness_levels.id"), nullable=False)
    readiness_type: Mapped[str] = mapped_column(String(30), nullable=False)

    startup: Mapped[Startup] = relationship("Startup", back_populates="readiness_levels")
    readiness_level: Mapped[ReadinessLevel] = relationship("ReadinessLevel")


class StartupRNA(Base):
    """Readiness-and-needs narrative for one dimension at its current level."""
    __tablename__ = "startup_rnas"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    startup_id: Mapped[int] = mapped_column(Integer, ForeignKey("startups.id"), nullable=False)
    readiness_level_id: Mapped[int] = mapped_column(Integer, ForeignKey("readiness_levels.id"), nullable=False)
    rna: Mapped[str] = mapped_column(Text, default="")
    is_ai_generated: Mapped[bool] = mapped_column(Boolean, default=False)

    startup: Mapped[Startup] = relationship("Startup", back_populates="rnas")
    readiness_level: Mapped[ReadinessLevel] = relationship("ReadinessLevel")


# ---------------------------------------------------------------------------
# Work items (task/RNS, initiative, roadblock)
# ---------------------------------------------------------------------------


class ApprovableMixin:
    """Columns shared by every record kind that goes through status approval."""

    status: Mapped[int] = mapped_column(Integer, default=ItemStatus.NEW.value)
    requested_status: Mapped[int] = mapped_column(Integer, default=ItemStatus.NEW.value)
    approval_status: Mapped[str] = mapped_column(String(20), default=ApprovalStatus.UNCHANGED.value)
    is_ai_generated: Mapped[bool] = mapped_column(Boolean, default=False)
    clicked_by_mentor: Mapped[bool] = mapped_column(Boolean, default=False)
    clicked_by_startup: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Rns(ApprovableMixin, Base):
    """A task targeting the next level of one readiness dimension."""
    __tablename__ = "rns"
    ordering_key = "priority_number"
    kind = "task"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    startup_id: Mapped[int] = mapped_column(Integer, ForeignKey("startups.id"), nullable=False)
    assignee_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)
    target_level_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("readiness_levels.id"), nullable=True)
    readiness_type: Mapped[str] = mapped_column(String(30), default="")
    priority_number: Mapped[int] = mapped_column(Integer, default=1)
    description: Mapped[str] = mapped_column(Text, default="")

    startup: Mapped[Startup] = relationship("Startup", back_populates="tasks")
    assignee: Mapped[User | None] = relationship("User")
    target_level: Mapped[ReadinessLevel | None] = relationship("ReadinessLevel")
    initiatives: Mapped[list[Initiative]] = relationship(
        "Initiative", back_populates="rns", cascade="all, delete-orphan",
    )


class Initiative(ApprovableMixin, Base):
    """A sub-task under an RNS."""
    __tablename__ = "initiatives"
    ordering_key = "initiative_number"
    kind = "initiative"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    startup_id: Mapped[int] = mapped_column(Integer, ForeignKey("startups.id"), nullable=False)
    rns_id: Mapped[int] = mapped_column(Integer, ForeignKey("rns.id"), nullable=False)
    assignee_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)
    initiative_number: Mapped[int] = mapped_column(Integer, default=1)
    priority_number: Mapped[int] = mapped_column(Integer, default=0)
    description: Mapped[str] = mapped_column(Text, default="")
    measures: Mapped[str] = mapped_column(Text, default="")
    targets: Mapped[str] = mapped_column(Text, default="")
    remarks: Mapped[str] = mapped_column(Text, default="")

    startup: Mapped[Startup] = relationship("Startup", back_populates="initiatives")
    rns: Mapped[Rns] = relationship("Rns", back_populates="initiatives")
    assignee: Mapped[User | None] = relationship("User")


class Roadblock(ApprovableMixin, Base):
    """A risk record; risk_number is a 1-5 severity."""
    __tablename__ = "roadblocks"
    ordering_key = "risk_number"
    kind = "roadblock"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    startup_id: Mapped[int] = mapped_column(Integer, ForeignKey("startups.id"), nullable=False)
    assignee_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)
    risk_number: Mapped[int] = mapped_column(Integer, default=1)
    description: Mapped[str] = mapped_column(Text, default="")
    fix: Mapped[str] = mapped_column(Text, default="")

    startup: Mapped[Startup] = relationship("Startup", back_populates="roadblocks")
    assignee: Mapped[User | None] = relationship("User")


WORK_ITEM_MODELS: dict[str, type[Rns] | type[Initiative] | type[Roadblock]] = {
    "task": Rns,
    "initiative": Initiative,
    "roadblock": Roadblock,
}


class ChatMessage(Base):
    """One turn of a refinement conversation about a work item."""
    __tablename__ = "chat_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    item_kind: Mapped[str] = mapped_column(String(20), nullable=False)  # "task" | "initiative" | "roadblock"
    item_id: Mapped[int] = mapped_column(Integer, nullable=False)
    role: Mapped[str] = mapped_column(String(10), nullable=False)  # "User" | "Ai"
    content: Mapped[str] = mapped_column(Text, default="")
    refined_json: Mapped[str] = mapped_column(Text, default="{}")
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


# ---------------------------------------------------------------------------
# Assessment templates
# ---------------------------------------------------------------------------


class Assessment(Base):
    __tablename__ = "assessments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    assessment_type: Mapped[str] = mapped_column(String(30), nullable=False)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    answer_type: Mapped[int] = mapped_column(Integer, default=AnswerType.SHORT_ANSWER.value)

    assignments: Mapped[list[StartupAssessment]] = relationship(
        "StartupAssessment", back_populates="assessment", cascade="all, delete-orphan",
    )


class StartupAssessment(Base):
    __tablename__ = "startup_assessments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    startup_id: Mapped[int] = mapped_column(Integer, ForeignKey("startups.id"), nullable=False)
    assessment_id: Mapped[int] = mapped_column(Integer, ForeignKey("assessments.id"), nullable=False)
    is_applicable: Mapped[bool] = mapped_column(Boolean, default=True)
    assigned_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    startup: Mapped[Startup] = relationship("Startup", back_populates="assessments")
    assessment: Mapped[Assessment] = relationship("Assessment", back_populates="assignments")
