import csv
import io
import logging
from typing import Optional

from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from interview_engine.core.errors import QuestionNotFound
from interview_engine.models.question import MAX_TEST_CASES, CodingQuestion
from interview_engine.schemas.question import QuestionCreate, QuestionImportResult
from interview_engine.utils.enums import Difficulty

logger = logging.getLogger(__name__)

CSV_COLUMNS = {
    "Name": "title",
    "Level": "difficulty",
    "Topic": "topic",
    "Problem Statement": "problem_statement",
    "Input Format": "input_format",
    "Output Format": "output_format",
    "Constraints": "constraints",
    "Input Example": "input_example",
    "Output Example": "output_example",
    "Explanation": "explanation",
}
REQUIRED_CSV_COLUMNS = ("Name", "Level", "Problem Statement", "TestCase1Output")


def create_question(db: Session, data: QuestionCreate, commit: bool = True) -> CodingQuestion:
    question = CodingQuestion(**data.model_dump(exclude={"test_cases"}))
    question.test_cases = [case.model_dump() for case in data.test_cases]
    db.add(question)
    if commit:
        db.commit()
    else:
        db.flush()
    logger.info(
        "Coding question created",
        extra={"question_id": question.id, "difficulty": question.difficulty.value},
    )
    return question


def get_question(db: Session, question_id: int) -> CodingQuestion:
    question = db.get(CodingQuestion, question_id)
    if not question:
        raise QuestionNotFound(question_id)
    return question


def list_questions(
    db: Session,
    difficulty: Optional[Difficulty] = None,
    topic: Optional[str] = None,
    active_only: bool = True,
    limit: int = 50,
    offset: int = 0,
) -> list[CodingQuestion]:
    query = select(CodingQuestion)
    if difficulty is not None:
        query = query.where(CodingQuestion.difficulty == difficulty)
    if topic:
        query = query.where(CodingQuestion.topic == topic)
    if active_only:
        query = query.where(CodingQuestion.is_active.is_(True))
    query = query.order_by(CodingQuestion.id).limit(limit).offset(offset)
    return list(db.execute(query).scalars())


def set_question_active(db: Session, question_id: int, is_active: bool) -> CodingQuestion:
    # deactivating keeps existing assignments and submissions intact
    question = get_question(db, question_id)
    question.is_active = is_active
    db.commit()
    return question


def question_stats(db: Session) -> dict:
    rows = db.execute(
        select(CodingQuestion.difficulty, func.count(CodingQuestion.id))
        .where(CodingQuestion.is_active.is_(True))
        .group_by(CodingQuestion.difficulty)
    ).all()
    by_tier = {tier.value: 0 for tier in Difficulty}
    for tier, count in rows:
        by_tier[tier.value] = count
    return {"total_active": sum(by_tier.values()), "by_difficulty": by_tier}


def _row_to_question(row: dict) -> QuestionCreate:
    missing = [col for col in REQUIRED_CSV_COLUMNS if not (row.get(col) or "").strip()]
    if missing:
        raise ValueError(f"Missing required field: {', '.join(missing)}")

    level = row["Level"].strip().lower()
    if level not in {tier.value for tier in Difficulty}:
        raise ValueError(f"Invalid level: {row['Level']}. Must be Easy, Medium, or Hard")

    payload = {
        field: (row.get(column) or "").strip()
        for column, field in CSV_COLUMNS.items()
    }
    payload["difficulty"] = level

    cases = []
    for n in range(1, MAX_TEST_CASES + 1):
        expected = row.get(f"TestCase{n}Output")
        if expected is None or expected == "":
            continue
        cases.append({"input": row.get(f"TestCase{n}Input") or "", "output": expected})
    payload["test_cases"] = cases

    return QuestionCreate(**payload)


def import_questions_csv(
    db: Session, content: str, created_by: Optional[int] = None
) -> QuestionImportResult:
    """Bulk-create questions from CSV text. Bad rows are reported, good rows kept."""
    reader = csv.DictReader(io.StringIO(content))
    successful = 0
    errors = []
    total = 0

    for line_no, row in enumerate(reader, start=2):
        total += 1
        try:
            data = _row_to_question(row)
            data.created_by = created_by
            create_question(db, data, commit=False)
            successful += 1
        except (ValueError, SchemaValidationError) as e:
            errors.append(f"Row {line_no}: {e}")

    db.commit()
    logger.info(
        "Question CSV import finished",
        extra={"total": total, "successful": successful, "failed": len(errors)},
    )
    return QuestionImportResult(
        total_processed=total,
        successful=successful,
        failed=len(errors),
        errors=errors,
    )
