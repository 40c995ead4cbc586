"""Tests for answer persistence, normalization against the catalog, rating and ranking."""
from __future__ import annotations

import pytest
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from accelerator import readiness
from accelerator.catalog import seed_reference_data
from accelerator.errors import NotFoundError, PreconditionError
from accelerator.models import (
    CalculatorQuestion, ReadinessLevel, ReadinessType, Startup, StartupReadinessLevel,
)
from accelerator.scoring import FALLBACK_LEVEL_INDEX


def _answer(questions, readiness_type: str, *scores: int) -> list[dict]:
    return [
        {"question_id": q.id, "response": f"answer {i}", "score": score}
        for i, (q, score) in enumerate(zip(questions[readiness_type], scores))
    ]


def _levels_by_type(rows) -> dict[str, int]:
    return {r.readiness_type: r.readiness_level.level for r in rows}


class TestCatalogSeed:
    def test_catalog_has_nine_levels_per_type(self, session):
        for t in ReadinessType:
            levels = readiness.catalog_for(session, t.value)
            assert [lvl.level for lvl in levels] == list(range(1, 10))

    def test_seed_is_idempotent(self, session):
        assert seed_reference_data(session) is False

    def test_three_urat_questions_per_type(self, urat_questions):
        assert {t: len(qs) for t, qs in urat_questions.items()} == {t.value: 3 for t in ReadinessType}


class TestAnswers:
    def test_submit_and_list(self, session, startup, urat_questions):
        readiness.submit_urat_answers(session, startup.id, _answer(urat_questions, "Market", 2, 3))
        listed = readiness.list_urat_answers(session, startup.id)
        assert [a["score"] for a in listed] == [2, 3]
        assert {a["readiness_type"] for a in listed} == {"Market"}

    def test_unknown_question_writes_nothing(self, session, startup, urat_questions):
        answers = _answer(urat_questions, "Market", 2) + [{"question_id": 9999, "score": 5}]
        with pytest.raises(NotFoundError):
            readiness.submit_urat_answers(session, startup.id, answers)
        assert readiness.list_urat_answers(session, startup.id) == []

    def test_unknown_startup(self, session, urat_questions):
        with pytest.raises(NotFoundError, match="Startup with ID 404"):
            readiness.submit_urat_answers(session, 404, _answer(urat_questions, "Market", 1))

    def test_update_answer(self, session, startup, urat_questions):
        (row,) = readiness.submit_urat_answers(session, startup.id, _answer(urat_questions, "Investment", 1))
        readiness.update_urat_answer(session, row.id, score=4)
        assert readiness.aggregate_startup_scores(session, startup.id)["Investment"] == 4

    def test_aggregate_defaults_to_zero(self, session, startup, urat_questions):
        readiness.submit_urat_answers(session, startup.id, _answer(urat_questions, "Technology", 3, 3, 3))
        totals = readiness.aggregate_startup_scores(session, startup.id)
        assert totals == {
            "Technology": 9, "Market": 0, "Acceptance": 0,
            "Regulatory": 0, "Organizational": 0, "Investment": 0,
        }


class TestNormalizeAndAssign:
    def test_technology_nine_others_fallback(self, session, startup, urat_questions):
        readiness.submit_urat_answers(session, startup.id, _answer(urat_questions, "Technology", 3, 3, 3))
        rows = readiness.normalize_and_assign(session, startup.id)

        assert len(rows) == 6
        levels = _levels_by_type(rows)
        assert levels["Technology"] == 5
        fallback = FALLBACK_LEVEL_INDEX + 1
        assert {t: lvl for t, lvl in levels.items() if t != "Technology"} == {
            "Market": fallback, "Acceptance": fallback, "Regulatory": fallback,
            "Organizational": fallback, "Investment": fallback,
        }

    def test_rows_reference_own_dimension(self, session, startup, urat_questions):
        readiness.submit_urat_answers(session, startup.id, _answer(urat_questions, "Market", 5, 5, 5))
        rows = readiness.normalize_and_assign(session, startup.id)
        for row in rows:
            assert row.readiness_level.readiness_type == row.readiness_type
        assert _levels_by_type(rows)["Market"] == 9

    def test_second_run_is_rejected(self, session, startup):
        readiness.normalize_and_assign(session, startup.id)
        with pytest.raises(PreconditionError):
            readiness.normalize_and_assign(session, startup.id)
        count = len(session.execute(
            select(StartupReadinessLevel).where(StartupReadinessLevel.startup_id == startup.id)
        ).scalars().all())
        assert count == 6

    def test_storage_rejects_duplicate_dimension(self, session, startup):
        entry = readiness.catalog_for(session, "Market")[0]
        session.add(StartupReadinessLevel(startup_id=startup.id, readiness_level_id=entry.id, readiness_type="Market"))
        session.add(StartupReadinessLevel(startup_id=startup.id, readiness_level_id=entry.id, readiness_type="Market"))
        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()

    def test_incomplete_catalog(self, session, startup):
        session.execute(delete(ReadinessLevel).where(
            ReadinessLevel.readiness_type == "Investment", ReadinessLevel.level > 3,
        ))
        session.commit()
        with pytest.raises(PreconditionError, match="Investment"):
            readiness.normalize_and_assign(session, startup.id)


class TestRateDimension:
    def test_creates_row(self, session, startup):
        row = readiness.rate_dimension(session, startup.id, "Regulatory", 4)
        assert row.readiness_level.level == 4
        assert row.readiness_level.readiness_type == "Regulatory"

    def test_updates_existing_row(self, session, startup):
        readiness.normalize_and_assign(session, startup.id)
        first = readiness.rate_dimension(session, startup.id, "Technology", 8)
        second = readiness.rate_dimension(session, startup.id, "Technology", 8)
        assert first.id == second.id
        levels = _levels_by_type(readiness.get_startup_readiness_levels(session, startup.id))
        assert levels["Technology"] == 8
        assert len(levels) == 6

    def test_unknown_level(self, session, startup):
        session.execute(delete(ReadinessLevel).where(
            ReadinessLevel.readiness_type == "Market", ReadinessLevel.level == 9,
        ))
        session.commit()
        with pytest.raises(NotFoundError):
            readiness.rate_dimension(session, startup.id, "Market", 9)


class TestCalculatorAndRanking:
    def _pick(self, session, category: str, score: int) -> int:
        return session.execute(
            select(CalculatorQuestion.id).where(
                CalculatorQuestion.category == category, CalculatorQuestion.score == score,
            )
        ).scalars().first()

    def test_report(self, session, startup):
        ids = [self._pick(session, "Technology", 4), self._pick(session, "Product Development", 3)]
        readiness.submit_calculator_answers(session, startup.id, ids)
        report = readiness.calculator_report(session, startup.id)
        assert report.category_scores["Technology"] == 4
        assert report.technology_level == 7

    def test_questions_grouped(self, session):
        grouped = readiness.calculator_questions_by_category(session)
        assert [g["category"] for g in grouped][0] == "Technology"
        assert all(g["questions"] for g in grouped)

    def test_ranking_sorted_by_total(self, session, startup, urat_questions):
        other = Startup(name="Other")
        session.add(other)
        session.commit()
        readiness.submit_urat_answers(session, startup.id, _answer(urat_questions, "Technology", 1, 1))
        readiness.submit_urat_answers(session, other.id, _answer(urat_questions, "Market", 5, 5))
        readiness.submit_calculator_answers(session, startup.id, [self._pick(session, "Technology", 5)])

        ranking = readiness.rank_startups_by_urat(session)
        assert [r["id"] for r in ranking] == [other.id, startup.id]
        assert ranking[0]["total_score"] == 11
        assert ranking[1]["total_score"] == 2 + 5
