"""Assessment templates and their assignment to startups.

A startup holds at most one assignment per assessment *type*. Assigning a
template whose type is already covered by a different template replaces the
old assignment. Creating a template fires the ``template created`` event,
whose default handler assigns it to every qualified startup.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from accelerator.models import (
    AnswerType, Assessment, QualificationStatus, ReadinessType, Startup, StartupAssessment,
)
from accelerator.services import apply_updates, get_or_raise

log = logging.getLogger(__name__)

TEMPLATE_FIELDS = ("assessment_type", "name", "description", "answer_type")


@dataclass
class ReconcileResult:
    assigned: list[int] = field(default_factory=list)
    replaced: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)

    def as_dict(self) -> dict[str, list[int]]:
        return {"assigned": self.assigned, "replaced": self.replaced, "skipped": self.skipped}


# ---------------------------------------------------------------------------
# Template created event
# ---------------------------------------------------------------------------

TemplateHandler = Callable[[Session, Assessment], Any]

_template_created_handlers: list[TemplateHandler] = []


def on_template_created(handler: TemplateHandler) -> TemplateHandler:
    """Register *handler* to run, inside the creating transaction, for each new template."""
    _template_created_handlers.append(handler)
    return handler


def _emit_template_created(session: Session, template: Assessment) -> None:
    for handler in _template_created_handlers:
        handler(session, template)


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


def template_dict(template: Assessment) -> dict:
    return {
        "id": template.id, "assessment_type": template.assessment_type, "name": template.name,
        "description": template.description,
        "answer_type": template.answer_type,
        "answer_type_name": AnswerType(template.answer_type).name.title().replace("_", ""),
    }


def create_template(session: Session, data: dict[str, Any]) -> Assessment:
    template = Assessment()
    apply_updates(template, data, TEMPLATE_FIELDS)
    session.add(template)
    try:
        session.flush()
        _emit_template_created(session, template)
        session.commit()
    except Exception:
        session.rollback()
        raise
    log.info("Created assessment template %d (%s)", template.id, template.name)
    return template


def list_templates(session: Session) -> list[Assessment]:
    return list(session.execute(select(Assessment).order_by(Assessment.id)).scalars().all())


def templates_by_type(session: Session) -> dict[str, list[dict]]:
    grouped: dict[str, list[dict]] = {t.value: [] for t in ReadinessType}
    for template in list_templates(session):
        grouped.setdefault(template.assessment_type, []).append(template_dict(template))
    return grouped


def get_template(session: Session, template_id: int) -> Assessment:
    return get_or_raise(session, Assessment, template_id, "Assessment")


def update_template(session: Session, template_id: int, updates: dict[str, Any]) -> Assessment:
    template = get_template(session, template_id)
    apply_updates(template, updates, TEMPLATE_FIELDS)
    session.commit()
    return template


def delete_template(session: Session, template_id: int) -> None:
    session.delete(get_template(session, template_id))
    session.commit()


# ---------------------------------------------------------------------------
# Assignments
# ---------------------------------------------------------------------------


def assignment_dict(assignment: StartupAssessment) -> dict:
    return {
        "id": assignment.id, "startup_id": assignment.startup_id,
        "assessment_id": assignment.assessment_id, "is_applicable": assignment.is_applicable,
        "assessment": template_dict(assignment.assessment),
    }


def _assignments_for_type(session: Session, startup_id: int, assessment_type: str) -> list[StartupAssessment]:
    return list(session.execute(
        select(StartupAssessment)
        .join(Assessment, StartupAssessment.assessment_id == Assessment.id)
        .where(StartupAssessment.startup_id == startup_id, Assessment.assessment_type == assessment_type)
        .order_by(StartupAssessment.id)
    ).scalars().all())


def reconcile_assignments(session: Session, startup_id: int, template_ids: list[int]) -> ReconcileResult:
    """Assign *template_ids* to a startup, one assignment per assessment type.

    A template the startup already holds is left in place and not counted;
    any other assignment of its type is removed. Otherwise every assignment
    of the template's type is replaced by the new one. Unknown ids land in
    ``skipped``. All changes are committed together.
    """
    get_or_raise(session, Startup, startup_id, "Startup")
    result = ReconcileResult()
    try:
        for template_id in template_ids:
            template = session.get(Assessment, template_id)
            if template is None:
                log.warning("Assessment %s not found; skipping", template_id)
                result.skipped.append(template_id)
                continue

            existing = _assignments_for_type(session, startup_id, template.assessment_type)
            held = [a for a in existing if a.assessment_id == template.id]
            if held:
                for assignment in existing:
                    if assignment is not held[0]:
                        session.delete(assignment)
                session.flush()
                continue
            for assignment in existing:
                session.delete(assignment)
            if existing:
                result.replaced.append(template_id)
            else:
                result.assigned.append(template_id)
            session.add(StartupAssessment(startup_id=startup_id, assessment_id=template.id))
            session.flush()
        session.commit()
    except Exception:
        session.rollback()
        raise
    log.info(
        "Reconciled assessments for startup %d: %d assigned, %d replaced, %d skipped",
        startup_id, len(result.assigned), len(result.replaced), len(result.skipped),
    )
    return result


def _assign_missing(session: Session, startup_id: int, templates: list[Assessment]) -> list[StartupAssessment]:
    """Add assignments for templates the startup does not hold yet (by id only; caller must commit)."""
    present = set(session.execute(
        select(StartupAssessment.assessment_id).where(StartupAssessment.startup_id == startup_id)
    ).scalars().all())
    created = []
    for template in templates:
        if template.id in present:
            continue
        assignment = StartupAssessment(startup_id=startup_id, assessment_id=template.id)
        session.add(assignment)
        present.add(template.id)
        created.append(assignment)
    return created


def assign_all_templates(session: Session, startup_id: int) -> list[StartupAssessment]:
    """Give a startup every template it does not already hold."""
    get_or_raise(session, Startup, startup_id, "Startup")
    created = _assign_missing(session, startup_id, list_templates(session))
    session.commit()
    return created


@on_template_created
def assign_to_qualified_startups(session: Session, template: Assessment) -> None:
    startup_ids = session.execute(
        select(Startup.id).where(Startup.qualification_status == QualificationStatus.QUALIFIED.value)
    ).scalars().all()
    for startup_id in startup_ids:
        _assign_missing(session, startup_id, [template])
    if startup_ids:
        log.info("Assigned template %d to %d qualified startup(s)", template.id, len(startup_ids))


def list_startup_assessments(session: Session, startup_id: int) -> list[StartupAssessment]:
    get_or_raise(session, Startup, startup_id, "Startup")
    return list(session.execute(
        select(StartupAssessment).where(StartupAssessment.startup_id == startup_id)
        .order_by(StartupAssessment.id)
    ).scalars().all())


def toggle_applicability(session: Session, assignment_id: int) -> StartupAssessment:
    assignment = get_or_raise(session, StartupAssessment, assignment_id, "StartupAssessment")
    assignment.is_applicable = not assignment.is_applicable
    session.commit()
    return assignment
