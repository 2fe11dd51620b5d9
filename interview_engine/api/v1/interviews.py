from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from interview_engine.core.config import settings
from interview_engine.core.database import get_db
from interview_engine.schemas.bulk import BulkAssignRequest, BulkAssignResult
from interview_engine.schemas.interview import (
    InterviewCreate,
    InterviewOutcome,
    InterviewResponse,
    InterviewStats,
    InterviewUpdate,
)
from interview_engine.services import interview_service
from interview_engine.utils.enums import InterviewStatus, InterviewType

router = APIRouter()


@router.post("/interviews", response_model=InterviewResponse, status_code=201)
async def create_interview(
    payload: InterviewCreate,
    request: Request,
    db: Session = Depends(get_db),
):
    plan = payload.question_plan
    if plan is None and payload.interview_type == InterviewType.CODING:
        plan = settings.CODING_TIER_PLAN
    # waits on the recruiter lock; keep it off the event loop
    return await run_in_threadpool(
        interview_service.create_interview,
        db,
        payload,
        question_plan=plan,
        locks=request.app.state.recruiter_locks,
    )


@router.get("/interviews", response_model=list[InterviewResponse])
async def list_interviews(
    recruiter_id: Optional[int] = None,
    candidate_id: Optional[int] = None,
    status: Optional[InterviewStatus] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    return interview_service.list_interviews(
        db,
        recruiter_id=recruiter_id,
        candidate_id=candidate_id,
        status=status,
        start=start,
        end=end,
        limit=min(limit, 200),
        offset=offset,
    )


@router.get("/interviews/stats", response_model=InterviewStats)
async def get_interview_stats(recruiter_id: int, db: Session = Depends(get_db)):
    return interview_service.interview_stats(db, recruiter_id)


@router.post("/interviews/bulk-assign", response_model=BulkAssignResult)
async def bulk_assign_candidates(
    payload: BulkAssignRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    return await run_in_threadpool(request.app.state.orchestrator.assign, db, payload)


@router.get("/interviews/{interview_id}", response_model=InterviewResponse)
async def get_interview(interview_id: int, db: Session = Depends(get_db)):
    return interview_service.get_interview(db, interview_id)


@router.patch("/interviews/{interview_id}", response_model=InterviewResponse)
async def update_interview(
    interview_id: int,
    payload: InterviewUpdate,
    request: Request,
    db: Session = Depends(get_db),
):
    return await run_in_threadpool(
        interview_service.reschedule_interview,
        db,
        interview_id,
        payload,
        locks=request.app.state.recruiter_locks,
    )


@router.delete("/interviews/{interview_id}", status_code=204)
async def delete_interview(interview_id: int, db: Session = Depends(get_db)):
    interview_service.delete_interview(db, interview_id)
    return Response(status_code=204)


@router.post("/interviews/{interview_id}/start", response_model=InterviewResponse)
async def start_interview(interview_id: int, db: Session = Depends(get_db)):
    return interview_service.start_interview(db, interview_id)


@router.post("/interviews/{interview_id}/end", response_model=InterviewResponse)
async def end_interview(
    interview_id: int,
    outcome: Optional[InterviewOutcome] = None,
    db: Session = Depends(get_db),
):
    return interview_service.end_interview(db, interview_id, outcome)


@router.post("/interviews/{interview_id}/cancel", response_model=InterviewResponse)
async def cancel_interview(interview_id: int, db: Session = Depends(get_db)):
    return interview_service.cancel_interview(db, interview_id)
