"""Integration tests for the FastAPI endpoints.

Uses TestClient with an in-memory database and a fake LLM client.
"""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from accelerator.catalog import seed_reference_data
from accelerator.errors import GenerationError
from accelerator.llm import LLMClient
from accelerator.models import Base

PROPOSAL = {
    "title": "Solar irrigation", "description": "Low-cost solar pumps",
    "problem_statement": "Diesel is expensive", "target_market": "Smallholder farmers",
    "solution_description": "Modular pump kits", "objectives": "Pilot in 3 villages",
    "scope": "Hardware", "methodology": "Field pilots",
}


@pytest.fixture()
def test_db():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    with TestSession() as session:
        seed_reference_data(session)
        session.commit()
    return engine, TestSession


@pytest.fixture()
def fake_llm():
    client = MagicMock(spec=LLMClient)
    client.generate_records = AsyncMock(return_value=[])
    client.generate_text = AsyncMock(return_value="")
    return client


@pytest.fixture()
def client(test_db, fake_llm, tmp_path, monkeypatch):
    """FastAPI TestClient using the in-memory database and the fake LLM."""
    # The lifespan hook opens its own database; keep it out of the package tree.
    monkeypatch.setenv("ACCELERATOR_DB_PATH", str(tmp_path / "lifespan.db"))
    _, TestSession = test_db
    from accelerator.app import app, db_session, llm_client

    def override_db_session():
        session = TestSession()
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[db_session] = override_db_session
    app.dependency_overrides[llm_client] = lambda: fake_llm
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def startup_id(client):
    resp = client.post("/api/startups", json={"name": "SolarSeed", "capsule_proposal": PROPOSAL})
    assert resp.status_code == 201
    return resp.json()["id"]


def _answer_all(client, startup_id, readiness_type, score):
    questions = [q for q in client.get("/api/urat-questions").json() if q["readiness_type"] == readiness_type]
    answers = [{"question_id": q["id"], "response": "yes", "score": score} for q in questions]
    return client.post(f"/api/startups/{startup_id}/urat-answers", json={"answers": answers})


class TestStartupEndpoints:
    def test_create_and_get(self, client, startup_id):
        data = client.get(f"/api/startups/{startup_id}").json()
        assert data["name"] == "SolarSeed"
        assert data["qualification_status"] == "Pending"
        assert data["capsule_proposal"]["title"] == "Solar irrigation"
        assert data["readiness_levels"] == []

    def test_unknown_startup_is_404(self, client):
        resp = client.get("/api/startups/999")
        assert resp.status_code == 404
        assert "not found" in resp.json()["detail"]

    def test_create_user_conflict(self, client):
        body = {"email": "a@b.io", "role": "Mentor"}
        assert client.post("/api/users", json=body).status_code == 201
        assert client.post("/api/users", json=body).status_code == 409

    def test_approve_and_waitlist(self, client, startup_id):
        assert client.post(f"/api/startups/{startup_id}/approve").json()["qualification_status"] == "Qualified"
        resp = client.post(f"/api/startups/{startup_id}/waitlist", json={"message": "Next cohort"})
        assert resp.json()["waitlist_message"] == "Next cohort"

    def test_gating(self, client, startup_id):
        data = client.get(f"/api/startups/{startup_id}/gating").json()
        assert data == {"allow_rnas": False, "allow_tasks": False, "all_dimensions_have_rna": False}


class TestReadinessEndpoints:
    def test_normalize_flow(self, client, startup_id):
        assert _answer_all(client, startup_id, "Technology", 3).status_code == 201
        assert client.get(f"/api/startups/{startup_id}/scores").json()["Technology"] == 9

        resp = client.post(f"/api/startups/{startup_id}/readiness-levels")
        assert resp.status_code == 201
        levels = {r["readiness_type"]: r["level"] for r in resp.json()}
        assert levels["Technology"] == 5
        assert levels["Market"] == 6

        again = client.post(f"/api/startups/{startup_id}/readiness-levels")
        assert again.status_code == 400

    def test_rate_dimension(self, client, startup_id):
        resp = client.put(
            f"/api/startups/{startup_id}/readiness-levels",
            json={"readiness_type": "Investment", "level": 7},
        )
        assert resp.status_code == 200
        assert resp.json()["level"] == 7

    def test_rate_dimension_out_of_range(self, client, startup_id):
        resp = client.put(
            f"/api/startups/{startup_id}/readiness-levels",
            json={"readiness_type": "Investment", "level": 12},
        )
        assert resp.status_code == 422

    def test_unknown_question_is_404(self, client, startup_id):
        resp = client.post(
            f"/api/startups/{startup_id}/urat-answers",
            json={"answers": [{"question_id": 9999, "score": 1}]},
        )
        assert resp.status_code == 404

    def test_calculator_report_defaults(self, client, startup_id):
        data = client.get(f"/api/startups/{startup_id}/calculator-report").json()
        assert data["Technology Level"] == 1
        assert data["Commercialization Level"] == 1

    def test_ranking(self, client, startup_id):
        _answer_all(client, startup_id, "Market", 2)
        (row,) = client.get("/api/rankings/urat").json()
        assert row["urat_score"] == 6
        assert row["total_score"] == 6 + row["technology_level"]


class TestWorkItemEndpoints:
    def test_status_negotiation(self, client, startup_id):
        resp = client.post(f"/api/startups/{startup_id}/work-items/task", json={"description": "Build prototype"})
        assert resp.status_code == 201
        item_id = resp.json()["id"]

        proposed = client.post(f"/api/work-items/task/{item_id}/status", json={"role": "Startup", "status": 3})
        assert proposed.json()["status"] == 1
        assert proposed.json()["approval_status"] == "Pending"

        decided = client.post(f"/api/work-items/task/{item_id}/status", json={"role": "Mentor", "status": 3})
        # Same requested status as before: the mentor's call is a no-op.
        assert decided.json()["approval_status"] == "Pending"

        decided = client.post(f"/api/work-items/task/{item_id}/status", json={"role": "Mentor", "status": 4})
        assert decided.json()["status"] == 4
        assert decided.json()["approval_status"] == "Unchanged"

    def test_invalid_status_is_422(self, client, startup_id):
        item_id = client.post(f"/api/startups/{startup_id}/work-items/roadblock", json={"description": "x"}).json()["id"]
        resp = client.post(f"/api/work-items/roadblock/{item_id}/status", json={"role": "Startup", "status": 9})
        assert resp.status_code == 422

    def test_unknown_kind_is_422(self, client, startup_id):
        assert client.get(f"/api/startups/{startup_id}/work-items/widget").status_code == 422

    def test_initiative_requires_task(self, client, startup_id):
        resp = client.post(f"/api/startups/{startup_id}/work-items/initiative", json={"description": "x"})
        assert resp.status_code == 400

    def test_update_and_delete(self, client, startup_id):
        item_id = client.post(f"/api/startups/{startup_id}/work-items/task", json={"description": "a"}).json()["id"]
        resp = client.put(f"/api/work-items/task/{item_id}", json={"description": "b", "clicked_by_mentor": True})
        assert resp.json()["description"] == "b"
        assert resp.json()["clicked_by_mentor"] is True
        assert client.delete(f"/api/work-items/task/{item_id}").json() == {"ok": True}
        assert client.delete(f"/api/work-items/task/{item_id}").status_code == 404


class TestGenerationEndpoints:
    def test_rna_generation(self, client, startup_id, fake_llm):
        client.post(f"/api/startups/{startup_id}/readiness-levels")
        fake_llm.generate_records.return_value = [
            {"readiness_level_type": "Technology", "rna": "Build a field prototype"},
        ]
        resp = client.post(f"/api/startups/{startup_id}/rnas/generate")
        assert resp.status_code == 200
        (rna,) = resp.json()
        assert rna["readiness_type"] == "Technology"
        assert rna["is_ai_generated"] is True

    def test_generation_failure_is_502(self, client, startup_id, fake_llm):
        client.post(f"/api/startups/{startup_id}/readiness-levels")
        fake_llm.generate_records.side_effect = GenerationError("AI returned an invalid response")
        resp = client.post(f"/api/startups/{startup_id}/rnas/generate")
        assert resp.status_code == 502
        assert resp.json()["detail"] == "AI generation failed. Please try again."

    def test_tasks_need_rna(self, client, startup_id, fake_llm):
        resp = client.post(f"/api/startups/{startup_id}/work-items/task/generate", json={"count": 2, "rna_ids": [1]})
        assert resp.status_code == 400
        fake_llm.generate_records.assert_not_awaited()

    def test_count_bounds(self, client, startup_id):
        resp = client.post(f"/api/startups/{startup_id}/work-items/roadblock/generate", json={"count": 0})
        assert resp.status_code == 422


class TestAssessmentEndpoints:
    def test_reconcile(self, client, startup_id):
        first = client.post("/api/assessments", json={"assessment_type": "Market", "name": "Pricing"}).json()
        second = client.post("/api/assessments", json={"assessment_type": "Market", "name": "Channels"}).json()

        resp = client.post(f"/api/startups/{startup_id}/assessments", json={"template_ids": [first["id"]]})
        assert resp.json() == {"assigned": [first["id"]], "replaced": [], "skipped": []}
        resp = client.post(f"/api/startups/{startup_id}/assessments", json={"template_ids": [second["id"]]})
        assert resp.json()["replaced"] == [second["id"]]

        held = client.get(f"/api/startups/{startup_id}/assessments").json()
        assert [a["assessment_id"] for a in held] == [second["id"]]

    def test_new_template_reaches_qualified_startup(self, client, startup_id):
        client.post(f"/api/startups/{startup_id}/approve")
        template = client.post("/api/assessments", json={"assessment_type": "Technology", "name": "Lab test"}).json()
        held = client.get(f"/api/startups/{startup_id}/assessments").json()
        assert [a["assessment_id"] for a in held] == [template["id"]]

        toggled = client.post(f"/api/startup-assessments/{held[0]['id']}/toggle").json()
        assert toggled["is_applicable"] is False

    def test_grouped(self, client):
        client.post("/api/assessments", json={"assessment_type": "Investment", "name": "Cap table"})
        grouped = client.get("/api/assessments/grouped").json()
        assert set(grouped) == {"Technology", "Market", "Acceptance", "Regulatory", "Organizational", "Investment"}
        assert grouped["Investment"][0]["answer_type_name"] == "ShortAnswer"

    def test_bad_type_is_422(self, client):
        resp = client.post("/api/assessments", json={"assessment_type": "Astrology", "name": "x"})
        assert resp.status_code == 422
