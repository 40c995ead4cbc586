from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Generator

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

from accelerator import assessments, generator, readiness, refinement, services
from accelerator.db import init_db, session_generator
from accelerator.errors import GenerationError, NotFoundError, PreconditionError
from accelerator.llm import LLMClient
from accelerator.models import Startup, User
from accelerator.schemas import (
    AssessmentCreate,
    AssessmentOut,
    AssessmentUpdate,
    AssignmentOut,
    CalculatorAnswersIn,
    CapsuleProposalIn,
    CapsuleProposalOut,
    ChatMessageOut,
    GatingOut,
    GenerateRequest,
    RankingOut,
    RateDimensionIn,
    ReadinessLevelOut,
    ReconcileOut,
    ReconcileRequest,
    RefineRequest,
    RnaOut,
    StartupCreate,
    StartupDetailOut,
    StartupOut,
    StatusChangeIn,
    UratAnswerOut,
    UratAnswersIn,
    UratAnswerUpdate,
    UserCreate,
    WaitlistRequest,
    WorkItemCreate,
    WorkItemKind,
    WorkItemOut,
    WorkItemUpdate,
)

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="Accelerator",
    version="0.1.0",
    description=(
        "Readiness scoring and task approval for startups in an accelerator program. "
        "Score questionnaires into 1-9 readiness levels, generate tasks, initiatives and "
        "roadblocks, negotiate status changes, and assign assessments."
    ),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Startups", "description": "Startup lifecycle and capsule proposals."},
        {"name": "Readiness", "description": "Questionnaire answers, readiness levels and ranking."},
        {"name": "Generation", "description": "AI-assisted generation. Requires ANTHROPIC_API_KEY."},
        {"name": "Work Items", "description": "Tasks (RNS), initiatives and roadblocks."},
        {"name": "Assessments", "description": "Assessment templates and startup assignments."},
    ],
)


# ---------------------------------------------------------------------------
# Dependencies & Helpers
# ---------------------------------------------------------------------------


def db_session() -> Generator[Session, None, None]:
    yield from session_generator()


def llm_client() -> LLMClient:
    return LLMClient()


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(PreconditionError)
async def precondition_handler(request: Request, exc: PreconditionError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(GenerationError)
async def generation_handler(request: Request, exc: GenerationError):
    log.error("Generation failed on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=502, content={"detail": "AI generation failed. Please try again."},
    )


# ---------------------------------------------------------------------------
# Routes: Startups
# ---------------------------------------------------------------------------


@app.post("/api/users", status_code=201, tags=["Startups"], summary="Create a user")
async def create_user(body: UserCreate, session: Session = Depends(db_session)):
    if session.execute(select(User).where(User.email == body.email)).scalars().first():
        raise HTTPException(409, f"User {body.email} already exists")
    user = User(email=body.email, first_name=body.first_name, last_name=body.last_name, role=body.role.value)
    session.add(user)
    session.commit()
    return {"id": user.id, "email": user.email, "role": user.role}


@app.get("/api/startups", response_model=list[StartupOut],
         tags=["Startups"], summary="List startups")
async def list_startups(session: Session = Depends(db_session)):
    startups = session.execute(select(Startup).order_by(Startup.id)).scalars().all()
    return [services.startup_summary(s) for s in startups]


@app.post("/api/startups", response_model=StartupDetailOut, status_code=201,
          tags=["Startups"], summary="Create a startup with its capsule proposal")
async def create_startup(body: StartupCreate, session: Session = Depends(db_session)):
    proposal = body.capsule_proposal.model_dump() if body.capsule_proposal else None
    startup = services.create_startup(session, body.name, body.user_id, proposal)
    return services.startup_detail(startup)


@app.get("/api/startups/{startup_id}", response_model=StartupDetailOut,
         tags=["Startups"], summary="Get a startup with its proposal and readiness levels")
async def get_startup(startup_id: int, session: Session = Depends(db_session)):
    return services.startup_detail(services.get_or_raise(session, Startup, startup_id, "Startup"))


@app.put("/api/startups/{startup_id}/capsule-proposal", response_model=CapsuleProposalOut,
         tags=["Startups"], summary="Create or update the capsule proposal (partial update)")
async def update_capsule_proposal(startup_id: int, body: CapsuleProposalIn, session: Session = Depends(db_session)):
    return services.proposal_dict(services.update_capsule_proposal(session, startup_id, body.model_dump()))


@app.post("/api/startups/{startup_id}/approve", response_model=StartupOut,
          tags=["Startups"], summary="Qualify a startup")
async def approve_startup(startup_id: int, session: Session = Depends(db_session)):
    return services.startup_summary(services.approve_startup(session, startup_id))


@app.post("/api/startups/{startup_id}/waitlist", response_model=StartupOut,
          tags=["Startups"], summary="Waitlist a startup with a message")
async def waitlist_startup(startup_id: int, body: WaitlistRequest, session: Session = Depends(db_session)):
    return services.startup_summary(services.waitlist_startup(session, startup_id, body.message))


@app.post("/api/startups/{startup_id}/complete", response_model=StartupOut,
          tags=["Startups"], summary="Mark a startup as having completed the program")
async def complete_startup(startup_id: int, session: Session = Depends(db_session)):
    return services.startup_summary(services.complete_startup(session, startup_id))


@app.get("/api/startups/{startup_id}/gating", response_model=GatingOut,
         tags=["Startups"], summary="Which generation steps are available for a startup")
async def startup_gating(startup_id: int, session: Session = Depends(db_session)):
    return {
        "allow_rnas": services.allow_rnas(session, startup_id),
        "allow_tasks": services.allow_tasks(session, startup_id),
        "all_dimensions_have_rna": generator.all_dimensions_have_rna(session, startup_id),
    }


# ---------------------------------------------------------------------------
# Routes: Readiness
# ---------------------------------------------------------------------------


@app.get("/api/urat-questions", tags=["Readiness"], summary="List URAT questions")
async def list_urat_questions(session: Session = Depends(db_session)):
    return [
        {"id": q.id, "readiness_type": q.readiness_type, "question": q.question}
        for q in readiness.list_urat_questions(session)
    ]


@app.get("/api/calculator-questions", tags=["Readiness"], summary="List calculator questions by category")
async def list_calculator_questions(session: Session = Depends(db_session)):
    return readiness.calculator_questions_by_category(session)


@app.post("/api/startups/{startup_id}/urat-answers", response_model=list[UratAnswerOut], status_code=201,
          tags=["Readiness"], summary="Submit URAT answers")
async def submit_urat_answers(startup_id: int, body: UratAnswersIn, session: Session = Depends(db_session)):
    readiness.submit_urat_answers(session, startup_id, [a.model_dump() for a in body.answers])
    return readiness.list_urat_answers(session, startup_id)


@app.get("/api/startups/{startup_id}/urat-answers", response_model=list[UratAnswerOut],
         tags=["Readiness"], summary="List a startup's URAT answers")
async def list_urat_answers(startup_id: int, session: Session = Depends(db_session)):
    services.get_or_raise(session, Startup, startup_id, "Startup")
    return readiness.list_urat_answers(session, startup_id)


@app.put("/api/urat-answers/{answer_id}", tags=["Readiness"], summary="Update a URAT answer")
async def update_urat_answer(answer_id: int, body: UratAnswerUpdate, session: Session = Depends(db_session)):
    answer = readiness.update_urat_answer(session, answer_id, body.response, body.score)
    return {"id": answer.id, "response": answer.response, "score": answer.score}


@app.post("/api/startups/{startup_id}/calculator-answers", status_code=201,
          tags=["Readiness"], summary="Submit calculator answers")
async def submit_calculator_answers(startup_id: int, body: CalculatorAnswersIn, session: Session = Depends(db_session)):
    rows = readiness.submit_calculator_answers(session, startup_id, body.question_ids)
    return {"created": len(rows)}


@app.get("/api/startups/{startup_id}/scores", tags=["Readiness"], summary="Raw URAT score per dimension")
async def startup_scores(startup_id: int, session: Session = Depends(db_session)):
    return readiness.aggregate_startup_scores(session, startup_id)


@app.get("/api/startups/{startup_id}/calculator-report", tags=["Readiness"],
         summary="Calculator category sums with technology and commercialization levels")
async def startup_calculator_report(startup_id: int, session: Session = Depends(db_session)):
    return readiness.calculator_report(session, startup_id).as_dict()


@app.post("/api/startups/{startup_id}/readiness-levels", response_model=list[ReadinessLevelOut], status_code=201,
          tags=["Readiness"], summary="Compute readiness levels from URAT answers")
async def normalize_readiness(startup_id: int, session: Session = Depends(db_session)):
    rows = readiness.normalize_and_assign(session, startup_id)
    return [services.readiness_level_dict(r) for r in rows]


@app.get("/api/startups/{startup_id}/readiness-levels", response_model=list[ReadinessLevelOut],
         tags=["Readiness"], summary="Get a startup's readiness levels")
async def get_readiness_levels(startup_id: int, session: Session = Depends(db_session)):
    return [services.readiness_level_dict(r) for r in readiness.get_startup_readiness_levels(session, startup_id)]


@app.put("/api/startups/{startup_id}/readiness-levels", response_model=ReadinessLevelOut,
         tags=["Readiness"], summary="Rate one dimension directly")
async def rate_dimension(startup_id: int, body: RateDimensionIn, session: Session = Depends(db_session)):
    row = readiness.rate_dimension(session, startup_id, body.readiness_type.value, body.level)
    return services.readiness_level_dict(row)


@app.get("/api/rankings/urat", response_model=list[RankingOut],
         tags=["Readiness"], summary="Rank startups by URAT score plus technology level")
async def urat_ranking(session: Session = Depends(db_session)):
    return readiness.rank_startups_by_urat(session)


# ---------------------------------------------------------------------------
# Routes: Generation
# ---------------------------------------------------------------------------


@app.post("/api/startups/{startup_id}/rnas/generate", response_model=list[RnaOut],
          tags=["Generation"], summary="Generate RNAs for dimensions that lack one")
async def generate_rnas(
    startup_id: int, session: Session = Depends(db_session), client: LLMClient = Depends(llm_client),
):
    rnas = await generator.generate_rna(session, startup_id, client)
    return [services.rna_dict(r) for r in rnas]


@app.get("/api/startups/{startup_id}/rnas", response_model=list[RnaOut],
         tags=["Generation"], summary="List a startup's RNAs")
async def list_rnas(startup_id: int, session: Session = Depends(db_session)):
    startup = services.get_or_raise(session, Startup, startup_id, "Startup")
    return [services.rna_dict(r) for r in startup.rnas]


@app.post("/api/startups/{startup_id}/work-items/{kind}/generate", response_model=list[WorkItemOut],
          tags=["Generation"], summary="Generate tasks, initiatives or roadblocks")
async def generate_items(
    startup_id: int, kind: WorkItemKind, body: GenerateRequest,
    session: Session = Depends(db_session), client: LLMClient = Depends(llm_client),
):
    items = await generator.generate_batch(
        session, startup_id, kind, body.count,
        {"rna_ids": body.rna_ids, "rns_ids": body.rns_ids}, client,
    )
    return [services.work_item_dict(i) for i in items]


# ---------------------------------------------------------------------------
# Routes: Work items
# ---------------------------------------------------------------------------


@app.get("/api/startups/{startup_id}/work-items/{kind}", response_model=list[WorkItemOut],
         tags=["Work Items"], summary="List work items of one kind in order")
async def list_items(startup_id: int, kind: WorkItemKind, session: Session = Depends(db_session)):
    return [services.work_item_dict(i) for i in services.list_work_items(session, kind, startup_id)]


@app.post("/api/startups/{startup_id}/work-items/{kind}", response_model=WorkItemOut, status_code=201,
          tags=["Work Items"], summary="Create a work item by hand")
async def create_item(
    startup_id: int, kind: WorkItemKind, body: WorkItemCreate, session: Session = Depends(db_session),
):
    item = services.create_work_item(session, kind, startup_id, body.model_dump(mode="json"))
    return services.work_item_dict(item)


@app.put("/api/work-items/{kind}/{item_id}", response_model=WorkItemOut,
         tags=["Work Items"], summary="Update work item fields (partial update)")
async def update_item(kind: WorkItemKind, item_id: int, body: WorkItemUpdate, session: Session = Depends(db_session)):
    item = services.update_work_item(session, kind, item_id, body.model_dump(mode="json"))
    return services.work_item_dict(item)


@app.delete("/api/work-items/{kind}/{item_id}", tags=["Work Items"], summary="Delete a work item")
async def delete_item(kind: WorkItemKind, item_id: int, session: Session = Depends(db_session)):
    services.delete_work_item(session, kind, item_id)
    return {"ok": True}


@app.post("/api/work-items/{kind}/{item_id}/status", response_model=WorkItemOut,
          tags=["Work Items"], summary="Request a status change (startups propose, mentors decide)")
async def change_status(kind: WorkItemKind, item_id: int, body: StatusChangeIn, session: Session = Depends(db_session)):
    item = services.change_status(session, kind, item_id, body.role.value, body.status)
    return services.work_item_dict(item)


@app.post("/api/work-items/{kind}/{item_id}/refine", tags=["Work Items"], summary="Refine a work item via AI chat")
async def refine_item(
    kind: WorkItemKind, item_id: int, body: RefineRequest,
    session: Session = Depends(db_session), client: LLMClient = Depends(llm_client),
):
    return await refinement.refine_item(session, kind, item_id, body.prompt, client)


@app.get("/api/work-items/{kind}/{item_id}/chat", response_model=list[ChatMessageOut],
         tags=["Work Items"], summary="Refinement chat history")
async def item_chat(kind: WorkItemKind, item_id: int, session: Session = Depends(db_session)):
    return [refinement.message_dict(m) for m in refinement.chat_history(session, kind, item_id)]


# ---------------------------------------------------------------------------
# Routes: Assessments
# ---------------------------------------------------------------------------


@app.post("/api/assessments", response_model=AssessmentOut, status_code=201,
          tags=["Assessments"], summary="Create a template and assign it to qualified startups")
async def create_assessment(body: AssessmentCreate, session: Session = Depends(db_session)):
    return assessments.template_dict(assessments.create_template(session, body.model_dump(mode="json")))


@app.get("/api/assessments", response_model=list[AssessmentOut],
         tags=["Assessments"], summary="List assessment templates")
async def list_assessments(session: Session = Depends(db_session)):
    return [assessments.template_dict(t) for t in assessments.list_templates(session)]


@app.get("/api/assessments/grouped", tags=["Assessments"], summary="Templates grouped by readiness type")
async def grouped_assessments(session: Session = Depends(db_session)):
    return assessments.templates_by_type(session)


@app.get("/api/assessments/{assessment_id}", response_model=AssessmentOut,
         tags=["Assessments"], summary="Get an assessment template")
async def get_assessment(assessment_id: int, session: Session = Depends(db_session)):
    return assessments.template_dict(assessments.get_template(session, assessment_id))


@app.put("/api/assessments/{assessment_id}", response_model=AssessmentOut,
         tags=["Assessments"], summary="Update an assessment template (partial update)")
async def update_assessment(assessment_id: int, body: AssessmentUpdate, session: Session = Depends(db_session)):
    template = assessments.update_template(session, assessment_id, body.model_dump(mode="json"))
    return assessments.template_dict(template)


@app.delete("/api/assessments/{assessment_id}", tags=["Assessments"],
            summary="Delete a template and its assignments")
async def delete_assessment(assessment_id: int, session: Session = Depends(db_session)):
    assessments.delete_template(session, assessment_id)
    return {"ok": True}


@app.post("/api/startups/{startup_id}/assessments", response_model=ReconcileOut,
          tags=["Assessments"], summary="Assign templates, one per assessment type")
async def reconcile_assessments(startup_id: int, body: ReconcileRequest, session: Session = Depends(db_session)):
    return assessments.reconcile_assignments(session, startup_id, body.template_ids).as_dict()


@app.post("/api/startups/{startup_id}/assessments/all", response_model=list[AssignmentOut],
          tags=["Assessments"], summary="Assign every template the startup does not hold")
async def assign_all_assessments(startup_id: int, session: Session = Depends(db_session)):
    return [assessments.assignment_dict(a) for a in assessments.assign_all_templates(session, startup_id)]


@app.get("/api/startups/{startup_id}/assessments", response_model=list[AssignmentOut],
         tags=["Assessments"], summary="List a startup's assessment assignments")
async def list_startup_assessments(startup_id: int, session: Session = Depends(db_session)):
    return [assessments.assignment_dict(a) for a in assessments.list_startup_assessments(session, startup_id)]


@app.post("/api/startup-assessments/{assignment_id}/toggle", response_model=AssignmentOut,
          tags=["Assessments"], summary="Toggle whether an assignment applies to the startup")
async def toggle_assessment(assignment_id: int, session: Session = Depends(db_session)):
    return assessments.assignment_dict(assessments.toggle_applicability(session, assignment_id))


def main():
    import uvicorn
    uvicorn.run("accelerator.app:app", host="127.0.0.1", port=8001, reload=True)


if __name__ == "__main__":
    main()
