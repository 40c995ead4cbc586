"""Default reference data: the readiness-level catalog and questionnaire questions."""
from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from accelerator.models import (
    READINESS_ABBREVIATIONS, CalculatorQuestion, ReadinessLevel, ReadinessType, UratQuestion,
)
from accelerator.scoring import (
    COMPETITIVE_LANDSCAPE, GO_TO_MARKET, PRODUCT_DEFINITION, PRODUCT_DEVELOPMENT,
    SUPPLY_CHAIN, TEAM, TECHNOLOGY,
)

LEVELS = range(1, 10)

DEFAULT_URAT_QUESTIONS: dict[ReadinessType, tuple[str, str, str]] = {
    ReadinessType.TECHNOLOGY: (
        "How far has the core technology been developed and validated?",
        "Has a prototype been demonstrated in a relevant or operational environment?",
        "How well documented and reproducible is the technology?",
    ),
    ReadinessType.MARKET: (
        "How well have you identified and sized your target market?",
        "What evidence do you have of customer demand?",
        "How developed is your pricing and revenue model?",
    ),
    ReadinessType.ACCEPTANCE: (
        "How have potential users responded to the solution?",
        "Which stakeholders have endorsed or piloted the solution?",
        "What barriers to adoption have you identified and addressed?",
    ),
    ReadinessType.REGULATORY: (
        "Have you identified the regulations that apply to your product?",
        "What permits, certifications or approvals have been obtained?",
        "How are intellectual property and compliance risks managed?",
    ),
    ReadinessType.ORGANIZATIONAL: (
        "How complete is the core team for the next stage?",
        "How formalized are roles, processes and governance?",
        "What advisors or partners support the organization?",
    ),
    ReadinessType.INVESTMENT: (
        "What funding has the venture secured so far?",
        "How prepared are your financial projections and pitch materials?",
        "What is your investment pipeline for the next round?",
    ),
}

# (category, question, score); one question per option of the calculator form.
DEFAULT_CALCULATOR_QUESTIONS: tuple[tuple[str, str, int], ...] = (
    (TECHNOLOGY, "Concept formulated, no experimental proof yet", 1),
    (TECHNOLOGY, "Proof of concept validated in the laboratory", 3),
    (TECHNOLOGY, "Prototype demonstrated in a relevant environment", 4),
    (TECHNOLOGY, "System proven in an operational environment", 5),
    (PRODUCT_DEVELOPMENT, "No product development started", 0),
    (PRODUCT_DEVELOPMENT, "Early prototype under development", 2),
    (PRODUCT_DEVELOPMENT, "Pilot units produced and tested", 3),
    (PRODUCT_DEVELOPMENT, "Product ready for low-rate production", 4),
    (PRODUCT_DEVELOPMENT, "Product in full production", 5),
    (PRODUCT_DEFINITION, "Product requirements not yet defined", 0),
    (PRODUCT_DEFINITION, "Initial specifications drafted", 1),
    (PRODUCT_DEFINITION, "Design validated with target users", 3),
    (PRODUCT_DEFINITION, "Design frozen for production", 5),
    (COMPETITIVE_LANDSCAPE, "Competitors not yet analyzed", 0),
    (COMPETITIVE_LANDSCAPE, "Main competitors identified", 2),
    (COMPETITIVE_LANDSCAPE, "Differentiation validated with customers", 4),
    (COMPETITIVE_LANDSCAPE, "Defensible market position established", 5),
    (TEAM, "Founder working alone", 1),
    (TEAM, "Founding team with complementary skills", 2),
    (TEAM, "Key hires made for the next stage", 4),
    (TEAM, "Complete management team in place", 5),
    (GO_TO_MARKET, "No go-to-market plan yet", 0),
    (GO_TO_MARKET, "Sales channels identified", 1),
    (GO_TO_MARKET, "First paying customers acquired", 3),
    (GO_TO_MARKET, "Repeatable sales process established", 5),
    (SUPPLY_CHAIN, "Suppliers not yet identified", 0),
    (SUPPLY_CHAIN, "Key suppliers identified", 1),
    (SUPPLY_CHAIN, "Supply agreements negotiated", 3),
    (SUPPLY_CHAIN, "Scalable manufacturing capacity secured", 5),
)


def level_name(readiness_type: ReadinessType, level: int) -> str:
    return f"{READINESS_ABBREVIATIONS[readiness_type]} {level}"


def seed_reference_data(session: Session) -> bool:
    """Insert the default catalog and questions if the catalog is empty.

    Returns True when anything was seeded. Caller must commit.
    """
    if session.scalar(select(func.count(ReadinessLevel.id))):
        return False
    for readiness_type in ReadinessType:
        for level in LEVELS:
            session.add(ReadinessLevel(
                readiness_type=readiness_type.value, level=level,
                name=level_name(readiness_type, level),
            ))
        for question in DEFAULT_URAT_QUESTIONS[readiness_type]:
            session.add(UratQuestion(readiness_type=readiness_type.value, question=question))
    for category, question, score in DEFAULT_CALCULATOR_QUESTIONS:
        session.add(CalculatorQuestion(category=category, question=question, score=score))
    return True
