from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal

from fastapi import FastAPI, HTTPException, Response
from pydantic import BaseModel, Field

from .db import SessionLocal, init_models
from .models import Run, StepOutcome
from .redisq import enqueue_event, dequeue_event

app = FastAPI(title="relayci control plane")

# -------------------- Schemas --------------------

class EventIn(BaseModel):
    kind: Literal["push", "pull_request"]
    branch: str = Field(min_length=1)
    target_branch: str | None = None
    repo_url: str | None = None

class EventQueued(BaseModel):
    event_id: str

class ClaimRequest(BaseModel):
    agent_id: str

class ClaimedEvent(EventIn):
    event_id: str

class StepOutcomeIn(BaseModel):
    index: int = Field(ge=1)
    name: str
    command: str
    status: Literal["success", "failed", "aborted"]
    exit_status: int | None = None
    output: str = ""
    duration: float = 0.0

class EventRef(BaseModel):
    kind: str
    branch: str | None = None
    target_branch: str | None = None

class RunIn(BaseModel):
    agent_id: str
    event_id: str | None = None
    workflow: str
    status: Literal["success", "failed", "aborted"]
    failed_step: int | None = None
    duration: float = 0.0
    event: EventRef | None = None
    steps: list[StepOutcomeIn] = Field(default_factory=list)

class RunCreated(BaseModel):
    run_id: str

class RunOut(RunIn):
    id: str
    outcome: str
    created_at: datetime

# -------------------- Startup --------------------

@app.on_event("startup")
async def startup() -> None:
    await init_models()

def _outcome(status: str, failed_step: int | None) -> str:
    return f"failed-at-step({failed_step})" if status == "failed" else status

# -------------------- Endpoints --------------------

@app.post("/events", response_model=EventQueued)
async def create_event(req: EventIn):
    if req.kind == "pull_request" and not req.target_branch:
        raise HTTPException(status_code=400, detail="pull_request events need target_branch")
    event_id = str(uuid.uuid4())
    await enqueue_event(event_id, req.model_dump())
    return EventQueued(event_id=event_id)

@app.post("/events/claim", response_model=ClaimedEvent)
async def claim(req: ClaimRequest):
    item = await dequeue_event(timeout_s=5)
    if item is None:
        return Response(status_code=204)
    event_id, payload = item
    return ClaimedEvent(event_id=event_id, **payload)

@app.post("/runs", response_model=RunCreated)
async def create_run(req: RunIn):
    # same invariant the runner guarantees: failed-at-step(i) has i outcomes, last one failed
    if req.status == "failed":
        if req.failed_step is None or req.failed_step != len(req.steps) or req.steps[-1].status != "failed":
            raise HTTPException(status_code=422, detail="failed run must end with its failed step")
        if any(s.status != "success" for s in req.steps[:-1]):
            raise HTTPException(status_code=422, detail="steps before the failed step must have succeeded")

    async with SessionLocal() as s:
        async with s.begin():
            run = Run(
                event_id=req.event_id,
                agent_id=req.agent_id,
                workflow=req.workflow,
                event_kind=req.event.kind if req.event else None,
                branch=req.event.branch if req.event else None,
                target_branch=req.event.target_branch if req.event else None,
                status=req.status,
                failed_step=req.failed_step,
                duration=req.duration,
            )
            run.steps = [
                StepOutcome(
                    position=st.index,
                    name=st.name,
                    command=st.command,
                    status=st.status,
                    exit_status=st.exit_status,
                    output=st.output,
                    duration=st.duration,
                )
                for st in req.steps
            ]
            s.add(run)
            await s.flush()
            run_id = str(run.id)

    return RunCreated(run_id=run_id)

@app.get("/runs/{run_id}", response_model=RunOut)
async def get_run(run_id: str):
    """Get a stored run with its step outcomes."""
    try:
        key = uuid.UUID(run_id)
    except ValueError:
        raise HTTPException(status_code=404, detail="Run not found")

    async with SessionLocal() as s:
        run = await s.get(Run, key)
        if not run:
            raise HTTPException(status_code=404, detail="Run not found")

        return RunOut(
            id=str(run.id),
            agent_id=run.agent_id,
            event_id=run.event_id,
            workflow=run.workflow,
            status=run.status,
            outcome=_outcome(run.status, run.failed_step),
            failed_step=run.failed_step,
            duration=run.duration,
            event=EventRef(kind=run.event_kind, branch=run.branch, target_branch=run.target_branch) if run.event_kind else None,
            steps=[
                StepOutcomeIn(
                    index=st.position,
                    name=st.name,
                    command=st.command,
                    status=st.status,
                    exit_status=st.exit_status,
                    output=st.output,
                    duration=st.duration,
                )
                for st in run.steps
            ],
            created_at=run.created_at,
        )
