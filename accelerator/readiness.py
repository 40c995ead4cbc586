"""Questionnaire answers and readiness levels for a startup.

Wraps the pure functions in :mod:`accelerator.scoring` with persistence:
answers are read from the database, aggregated, normalized against the
catalog, and written back as one ``StartupReadinessLevel`` row per dimension.
"""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from accelerator.errors import NotFoundError, PreconditionError
from accelerator.models import (
    CalculatorQuestion, CalculatorQuestionAnswer, ReadinessLevel, ReadinessType, Startup,
    StartupReadinessLevel, UratQuestion, UratQuestionAnswer,
)
from accelerator.scoring import (
    FALLBACK_LEVEL_INDEX, READINESS_TYPES, CalculatorReport, NormalizedLevel,
    aggregate_scores, build_calculator_report, normalize_dimension,
)
from accelerator.services import get_or_raise

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Questionnaire answers
# ---------------------------------------------------------------------------


def list_urat_questions(session: Session) -> list[UratQuestion]:
    return list(session.execute(select(UratQuestion).order_by(UratQuestion.id)).scalars().all())


def calculator_questions_by_category(session: Session) -> list[dict]:
    """Calculator questions grouped by category, in first-seen order."""
    grouped: dict[str, list[dict]] = {}
    for q in session.execute(select(CalculatorQuestion).order_by(CalculatorQuestion.id)).scalars():
        grouped.setdefault(q.category, []).append({"id": q.id, "question": q.question, "score": q.score})
    return [{"category": category, "questions": questions} for category, questions in grouped.items()]


def submit_urat_answers(session: Session, startup_id: int, answers: list[dict[str, Any]]) -> list[UratQuestionAnswer]:
    """Store URAT answers (``question_id``, ``response``, ``score``) for a startup.

    All question ids are resolved before anything is written.
    """
    get_or_raise(session, Startup, startup_id, "Startup")
    rows = []
    for answer in answers:
        question = get_or_raise(session, UratQuestion, answer["question_id"], "UratQuestion")
        rows.append(UratQuestionAnswer(
            startup_id=startup_id, question_id=question.id,
            response=answer.get("response") or "", score=int(answer.get("score") or 0),
        ))
    session.add_all(rows)
    session.commit()
    return rows


def submit_calculator_answers(
    session: Session, startup_id: int, question_ids: list[int],
) -> list[CalculatorQuestionAnswer]:
    """Store the chosen calculator options; each option carries its own score."""
    get_or_raise(session, Startup, startup_id, "Startup")
    rows = []
    for question_id in question_ids:
        question = get_or_raise(session, CalculatorQuestion, question_id, "CalculatorQuestion")
        rows.append(CalculatorQuestionAnswer(startup_id=startup_id, question_id=question.id))
    session.add_all(rows)
    session.commit()
    return rows


def list_urat_answers(session: Session, startup_id: int) -> list[dict]:
    answers = session.execute(
        select(UratQuestionAnswer).where(UratQuestionAnswer.startup_id == startup_id)
        .order_by(UratQuestionAnswer.id)
    ).scalars().all()
    return [
        {"id": a.id, "startup_id": a.startup_id, "question_id": a.question_id,
         "readiness_type": a.question.readiness_type, "response": a.response, "score": a.score}
        for a in answers
    ]


def update_urat_answer(
    session: Session, answer_id: int, response: str | None = None, score: int | None = None,
) -> UratQuestionAnswer:
    answer = get_or_raise(session, UratQuestionAnswer, answer_id, "UratQuestionAnswer")
    if response is not None:
        answer.response = response
    if score is not None:
        answer.score = score
    session.commit()
    return answer


# ---------------------------------------------------------------------------
# Aggregation and normalization
# ---------------------------------------------------------------------------


def aggregate_startup_scores(session: Session, startup_id: int) -> dict[str, int]:
    """Raw URAT score per readiness dimension; dimensions without answers are 0."""
    get_or_raise(session, Startup, startup_id, "Startup")
    rows = session.execute(
        select(UratQuestion.readiness_type, UratQuestionAnswer.score)
        .join(UratQuestion, UratQuestionAnswer.question_id == UratQuestion.id)
        .where(UratQuestionAnswer.startup_id == startup_id)
    ).all()
    return aggregate_scores(((t, s) for t, s in rows), (t.value for t in READINESS_TYPES))


def catalog_for(session: Session, readiness_type: str) -> list[ReadinessLevel]:
    """One dimension's catalog entries ordered by level."""
    return list(session.execute(
        select(ReadinessLevel).where(ReadinessLevel.readiness_type == readiness_type)
        .order_by(ReadinessLevel.level)
    ).scalars().all())


def normalize_and_assign(session: Session, startup_id: int) -> list[StartupReadinessLevel]:
    """Compute and store one readiness level per dimension from the URAT answers.

    Raises PreconditionError if the startup already has readiness levels
    (use :func:`rate_dimension` to change one) or if a dimension's catalog
    cannot serve the fallback entry.
    """
    get_or_raise(session, Startup, startup_id, "Startup")
    existing = session.scalar(
        select(func.count(StartupReadinessLevel.id)).where(StartupReadinessLevel.startup_id == startup_id)
    )
    if existing:
        raise PreconditionError(f"Startup {startup_id} already has readiness levels")

    totals = aggregate_startup_scores(session, startup_id)
    results: list[NormalizedLevel] = []
    for readiness_type in READINESS_TYPES:
        levels = catalog_for(session, readiness_type.value)
        if len(levels) <= FALLBACK_LEVEL_INDEX:
            raise PreconditionError(f"Readiness catalog for {readiness_type.value} is incomplete")
        results.append(normalize_dimension(readiness_type.value, totals[readiness_type.value], levels))

    rows = [
        StartupReadinessLevel(
            startup_id=startup_id, readiness_level=r.entry, readiness_type=r.readiness_type,
        )
        for r in results
    ]
    session.add_all(rows)
    session.commit()
    log.info(
        "Assigned readiness levels for startup %d: %s", startup_id,
        ", ".join(f"{r.readiness_type}={r.entry.level}" for r in results),
    )
    return rows


def rate_dimension(
    session: Session, startup_id: int, readiness_type: str, level: int,
) -> StartupReadinessLevel:
    """Set one dimension's level directly, creating or updating its row."""
    get_or_raise(session, Startup, startup_id, "Startup")
    entry = session.execute(
        select(ReadinessLevel).where(
            ReadinessLevel.readiness_type == readiness_type, ReadinessLevel.level == level,
        )
    ).scalar_one_or_none()
    if entry is None:
        raise NotFoundError(f"{readiness_type} readiness level", level)

    row = session.execute(
        select(StartupReadinessLevel).where(
            StartupReadinessLevel.startup_id == startup_id,
            StartupReadinessLevel.readiness_type == readiness_type,
        )
    ).scalar_one_or_none()
    if row is None:
        row = StartupReadinessLevel(startup_id=startup_id, readiness_type=readiness_type)
        session.add(row)
    row.readiness_level = entry
    session.commit()
    return row


def get_startup_readiness_levels(session: Session, startup_id: int) -> list[StartupReadinessLevel]:
    get_or_raise(session, Startup, startup_id, "Startup")
    order = {t.value: i for i, t in enumerate(ReadinessType)}
    rows = session.execute(
        select(StartupReadinessLevel).where(StartupReadinessLevel.startup_id == startup_id)
    ).scalars().all()
    return sorted(rows, key=lambda r: order.get(r.readiness_type, len(order)))


# ---------------------------------------------------------------------------
# Calculator report and ranking
# ---------------------------------------------------------------------------


def _calculator_pairs(session: Session, startup_id: int) -> list[tuple[str, int]]:
    rows = session.execute(
        select(CalculatorQuestion.category, CalculatorQuestion.score)
        .join(CalculatorQuestionAnswer, CalculatorQuestionAnswer.question_id == CalculatorQuestion.id)
        .where(CalculatorQuestionAnswer.startup_id == startup_id)
    ).all()
    return [(category, score) for category, score in rows]


def calculator_report(session: Session, startup_id: int) -> CalculatorReport:
    get_or_raise(session, Startup, startup_id, "Startup")
    return build_calculator_report(_calculator_pairs(session, startup_id))


def rank_startups_by_urat(session: Session) -> list[dict]:
    """Rank startups by total URAT score plus calculator technology level, highest first."""
    ranking = []
    for startup in session.execute(select(Startup).order_by(Startup.id)).scalars().all():
        urat_total = session.scalar(
            select(func.coalesce(func.sum(UratQuestionAnswer.score), 0))
            .where(UratQuestionAnswer.startup_id == startup.id)
        )
        technology_level = build_calculator_report(_calculator_pairs(session, startup.id)).technology_level
        ranking.append({
            "id": startup.id, "name": startup.name,
            "qualification_status": startup.qualification_status,
            "urat_score": urat_total, "technology_level": technology_level,
            "total_score": urat_total + technology_level,
        })
    ranking.sort(key=lambda r: r["total_score"], reverse=True)
    return ranking
