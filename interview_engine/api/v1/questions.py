from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.orm import Session

from interview_engine.core.database import get_db
from interview_engine.schemas.question import (
    AssignmentResponse,
    AssignQuestionsRequest,
    InterviewQuestionsResponse,
    QuestionActiveUpdate,
    QuestionCreate,
    QuestionImportResult,
    QuestionResponse,
)
from interview_engine.services import question_bank
from interview_engine.services.question_planner import assign_questions, interview_questions
from interview_engine.utils.enums import Difficulty

router = APIRouter()


# Question bank
@router.post("/questions", response_model=QuestionResponse, status_code=201)
async def create_question(payload: QuestionCreate, db: Session = Depends(get_db)):
    return question_bank.create_question(db, payload)


@router.get("/questions", response_model=list[QuestionResponse])
async def list_questions(
    difficulty: Optional[Difficulty] = None,
    topic: Optional[str] = None,
    active_only: bool = True,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    return question_bank.list_questions(
        db,
        difficulty=difficulty,
        topic=topic,
        active_only=active_only,
        limit=min(limit, 200),
        offset=offset,
    )


@router.get("/questions/stats")
async def get_question_stats(db: Session = Depends(get_db)):
    return question_bank.question_stats(db)


@router.post("/questions/import", response_model=QuestionImportResult)
async def import_questions(
    file: UploadFile = File(...),
    created_by: Optional[int] = None,
    db: Session = Depends(get_db),
):
    if not file.filename.endswith(".csv"):
        raise HTTPException(status_code=400, detail="Invalid file type")

    try:
        content = (await file.read()).decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="CSV must be UTF-8 encoded")
    finally:
        await file.close()

    return question_bank.import_questions_csv(db, content, created_by=created_by)


@router.get("/questions/{question_id}", response_model=QuestionResponse)
async def get_question(question_id: int, db: Session = Depends(get_db)):
    return question_bank.get_question(db, question_id)


@router.patch("/questions/{question_id}/active", response_model=QuestionResponse)
async def set_question_active(
    question_id: int,
    payload: QuestionActiveUpdate,
    db: Session = Depends(get_db),
):
    return question_bank.set_question_active(db, question_id, payload.is_active)


# Interview question assignment
@router.post(
    "/interviews/{interview_id}/questions",
    response_model=list[AssignmentResponse],
    status_code=201,
)
async def assign_interview_questions(
    interview_id: int,
    payload: AssignQuestionsRequest,
    db: Session = Depends(get_db),
):
    return assign_questions(db, interview_id, payload.tiers)


@router.get("/interviews/{interview_id}/questions", response_model=InterviewQuestionsResponse)
async def get_interview_questions(
    interview_id: int,
    candidate_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    assignments, current = interview_questions(db, interview_id, candidate_id)
    return {
        "interview_id": interview_id,
        "questions": assignments,
        "current_question_index": current,
    }
