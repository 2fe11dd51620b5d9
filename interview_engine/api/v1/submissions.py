from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from interview_engine.core.database import get_db
from interview_engine.schemas.submission import CodeRequest, SubmissionResponse
from interview_engine.services.grader import submissions_for_assignment, submissions_for_interview

router = APIRouter()


@router.post("/submissions/run", response_model=SubmissionResponse, status_code=201)
async def run_code(payload: CodeRequest, request: Request, db: Session = Depends(get_db)):
    # grading blocks on the executor; keep it off the event loop
    return await run_in_threadpool(request.app.state.grader.run_code, db, payload)


@router.post("/submissions/submit", response_model=SubmissionResponse, status_code=201)
async def submit_code(payload: CodeRequest, request: Request, db: Session = Depends(get_db)):
    return await run_in_threadpool(request.app.state.grader.submit_code, db, payload)


@router.get("/interviews/{interview_id}/submissions", response_model=list[SubmissionResponse])
async def get_interview_submissions(
    interview_id: int,
    candidate_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    return submissions_for_interview(db, interview_id, candidate_id)


@router.get("/assignments/{assignment_id}/submissions", response_model=list[SubmissionResponse])
async def get_assignment_submissions(
    assignment_id: int,
    candidate_id: int,
    db: Session = Depends(get_db),
):
    return submissions_for_assignment(db, assignment_id, candidate_id)
