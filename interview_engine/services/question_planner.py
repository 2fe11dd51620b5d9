import logging
import random
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from interview_engine.core.errors import InsufficientQuestions, InterviewClosed, InterviewNotFound
from interview_engine.models.assignment import InterviewQuestionAssignment
from interview_engine.models.interview import Interview
from interview_engine.models.question import CodingQuestion
from interview_engine.models.submission import CodeSubmission
from interview_engine.utils.enums import Difficulty

logger = logging.getLogger(__name__)

TIER_ORDER = (Difficulty.EASY, Difficulty.MEDIUM, Difficulty.HARD)


def _ordered_tiers(tiers: dict[Difficulty, int]) -> list[tuple[Difficulty, int]]:
    return [(Difficulty(t), tiers[t]) for t in sorted(tiers, key=lambda t: TIER_ORDER.index(Difficulty(t)))]


def plan_questions(
    db: Session,
    interview_id: int,
    tiers: dict[Difficulty, int],
    rng: Optional[random.Random] = None,
) -> list[CodingQuestion]:
    """Pick questions for every tier without writing anything.

    Raises InsufficientQuestions for the first tier whose eligible pool is
    smaller than requested.
    """
    rng = rng or random.Random()

    already_assigned = select(InterviewQuestionAssignment.question_id).where(
        InterviewQuestionAssignment.interview_id == interview_id
    )

    picked = []
    for tier, count in _ordered_tiers(tiers):
        if count <= 0:
            continue
        pool = list(
            db.execute(
                select(CodingQuestion)
                .where(
                    CodingQuestion.difficulty == tier,
                    CodingQuestion.is_active.is_(True),
                    CodingQuestion.id.not_in(already_assigned),
                )
                .order_by(CodingQuestion.id)
            ).scalars()
        )
        if len(pool) < count:
            raise InsufficientQuestions(tier, count, len(pool))
        picked.extend(rng.sample(pool, count))

    return picked


def assign_questions(
    db: Session,
    interview_id: int,
    tiers: dict[Difficulty, int],
    commit: bool = True,
    rng: Optional[random.Random] = None,
) -> list[InterviewQuestionAssignment]:
    """Append questions to an interview, easiest tier first.

    Existing assignments are never touched; new ones continue the order
    index after the current maximum.
    """
    interview = db.get(Interview, interview_id)
    if not interview:
        raise InterviewNotFound(interview_id)
    if interview.status.is_terminal:
        raise InterviewClosed(interview_id, interview.status)

    questions = plan_questions(db, interview_id, tiers, rng=rng)

    current_max = db.execute(
        select(func.max(InterviewQuestionAssignment.order_index)).where(
            InterviewQuestionAssignment.interview_id == interview_id
        )
    ).scalar()
    next_index = 0 if current_max is None else current_max + 1

    assignments = []
    for offset, question in enumerate(questions):
        assignment = InterviewQuestionAssignment(
            interview_id=interview_id,
            question_id=question.id,
            order_index=next_index + offset,
        )
        db.add(assignment)
        assignments.append(assignment)

    db.flush()
    if commit:
        db.commit()

    logger.info(
        "Questions assigned to interview",
        extra={
            "interview_id": interview_id,
            "question_ids": [q.id for q in questions],
            "tiers": {t.value: c for t, c in _ordered_tiers(tiers)},
        },
    )
    return assignments


def interview_questions(
    db: Session, interview_id: int, candidate_id: Optional[int] = None
) -> tuple[list[InterviewQuestionAssignment], int]:
    """Assignments in order plus the index of the question the candidate is on.

    The current question is the first one without a final submission, or the
    last one once everything has been submitted.
    """
    if not db.get(Interview, interview_id):
        raise InterviewNotFound(interview_id)

    assignments = list(
        db.execute(
            select(InterviewQuestionAssignment)
            .where(InterviewQuestionAssignment.interview_id == interview_id)
            .order_by(InterviewQuestionAssignment.order_index)
        ).scalars()
    )
    if not assignments or candidate_id is None:
        return assignments, 0

    submitted_ids = set(
        db.execute(
            select(CodeSubmission.assignment_id).where(
                CodeSubmission.interview_id == interview_id,
                CodeSubmission.candidate_id == candidate_id,
                CodeSubmission.submitted.is_(True),
            )
        ).scalars()
    )

    for index, assignment in enumerate(assignments):
        if assignment.id not in submitted_ids:
            return assignments, index
    return assignments, len(assignments) - 1
