"""Shared fixtures: in-memory SQLite database seeded with the reference catalog."""
from __future__ import annotations

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from accelerator.catalog import seed_reference_data
from accelerator.models import Base, CapsuleProposal, Startup, UratQuestion, User


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture()
def SessionLocal(engine):
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    with factory() as sess:
        seed_reference_data(sess)
        sess.commit()
    return factory


@pytest.fixture()
def session(SessionLocal):
    sess = SessionLocal()
    try:
        yield sess
    finally:
        sess.close()


@pytest.fixture()
def founder(session: Session) -> User:
    user = User(email="founder@example.com", first_name="Ada", last_name="Founder", role="Startup")
    session.add(user)
    session.commit()
    return user


@pytest.fixture()
def startup(session: Session, founder: User) -> Startup:
    s = Startup(name="SolarSeed", user_id=founder.id)
    s.capsule_proposal = CapsuleProposal(
        title="Solar irrigation", description="Low-cost solar pumps for smallholder farms",
        problem_statement="Diesel pumps are expensive", target_market="Smallholder farmers",
        solution_description="Modular solar pump kits", objectives="Pilot in 3 villages",
        scope="Hardware and financing", methodology="Field pilots",
    )
    session.add(s)
    session.commit()
    return s


@pytest.fixture()
def bare_startup(session: Session) -> Startup:
    """A startup without a capsule proposal."""
    s = Startup(name="NoProposal")
    session.add(s)
    session.commit()
    return s


@pytest.fixture()
def urat_questions(session: Session) -> dict[str, list[UratQuestion]]:
    grouped: dict[str, list[UratQuestion]] = {}
    for q in session.execute(select(UratQuestion).order_by(UratQuestion.id)).scalars():
        grouped.setdefault(q.readiness_type, []).append(q)
    return grouped
