"""
Submission state machine and scorer.

A submission is OPEN while ``submitted_at`` is null and FINALIZED once it is
set; finalization is terminal. Answers are upserted on (submission, question)
and judged at write time. Answers are locked once a submission is finalized.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from examcore.core.config import settings
from examcore.core.errors import InvalidState, NotFound
from examcore.models.orm import ExamAnswer, ExamPaper, ExamSubmission, Question, QuestionOption
from examcore.services.catalog import get_question, get_questions
from examcore.services.judge import correct_option, judge
from examcore.services.papers import get_paper
from examcore.services.paper_selector import resolve_question_ids

logger = logging.getLogger(__name__)

FINALIZE_IDEMPOTENT = "idempotent"
FINALIZE_RECOMPUTE = "recompute"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _load(db: Session, submission_id: str, for_update: bool = False) -> ExamSubmission:
    stmt = select(ExamSubmission).where(ExamSubmission.id == submission_id)
    if for_update:
        # Re-read under the lock; an instance already in the session may be stale.
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    submission = db.scalar(stmt)
    if submission is None:
        raise NotFound(f"Submission {submission_id} not found")
    return submission


# ============= Scorer =============

def compute_score(answers: Iterable[ExamAnswer], question_ids: Sequence[str], total_questions: int) -> Tuple[int, float]:
    """(correct_count, score_percent) counting only answers inside the snapshot."""
    in_scope = set(question_ids)
    correct = sum(1 for a in answers if a.is_correct and a.question_id in in_scope)
    if total_questions <= 0:
        return correct, 0.0
    return correct, correct / total_questions * 100


# ============= Lifecycle =============

def start(db: Session, user_id: str, paper_id: str, limit: Optional[int] = None) -> Tuple[ExamSubmission, List[str]]:
    paper = get_paper(db, paper_id)
    question_ids = resolve_question_ids(db, paper, limit)
    submission = ExamSubmission(
        user_id=user_id,
        exam_paper_id=paper.id,
        question_ids=question_ids,
        total_questions=len(question_ids),
        started_at=_now(),
        correct_count=0,
        score_percent=None,
    )
    db.add(submission)
    db.commit()
    db.refresh(submission)
    logger.info(f"Submission {submission.id} started by {user_id} on paper {paper.id} with {len(question_ids)} question(s)")
    return submission, question_ids


def _upsert_answer(db: Session, values: dict) -> None:
    dialect = db.get_bind().dialect.name
    if dialect in ("postgresql", "sqlite"):
        insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
        stmt = insert(ExamAnswer).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[ExamAnswer.submission_id, ExamAnswer.question_id],
            set_={
                "selected_option_id": stmt.excluded.selected_option_id,
                "is_correct": stmt.excluded.is_correct,
                "answered_at": stmt.excluded.answered_at,
            },
        )
        db.execute(stmt)
    else:
        db.merge(ExamAnswer(**values))


def submit_answer(
    db: Session,
    submission_id: str,
    question_id: str,
    selected_option_id: Optional[str],
    restrict_to_paper: Optional[bool] = None,
) -> ExamAnswer:
    """Judge and record one answer; re-submitting the same question overwrites it."""
    restrict = settings.RESTRICT_ANSWERS_TO_PAPER if restrict_to_paper is None else restrict_to_paper
    try:
        submission = _load(db, submission_id, for_update=True)
        if submission.submitted_at is not None:
            logger.info(f"Rejected answer for {question_id} on finalized submission {submission_id}")
            raise InvalidState(f"Submission {submission_id} is already finalized")
        question = get_question(db, question_id)
        if question is None:
            raise NotFound(f"Question {question_id} not found")
        if restrict and question_id not in (submission.question_ids or []):
            raise InvalidState(f"Question {question_id} is not part of submission {submission_id}")
        is_correct = judge(question, selected_option_id)
        _upsert_answer(db, {
            "submission_id": submission_id,
            "question_id": question_id,
            "selected_option_id": selected_option_id,
            "is_correct": is_correct,
            "answered_at": _now(),
        })
        db.commit()
    except (NotFound, InvalidState):
        db.rollback()
        raise
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Failed to record answer for {question_id} on submission {submission_id}")
        raise
    return db.get(ExamAnswer, (submission_id, question_id), populate_existing=True)


def finalize(db: Session, submission_id: str, policy: Optional[str] = None) -> ExamSubmission:
    """Freeze the submission's score.

    ``idempotent``: an already-finalized submission is returned unchanged.
    ``recompute``: every call recounts and overwrites ``submitted_at``.
    """
    policy = policy or settings.FINALIZE_POLICY
    if policy not in (FINALIZE_IDEMPOTENT, FINALIZE_RECOMPUTE):
        raise ValueError(f"Unknown finalize policy: {policy}")
    try:
        submission = _load(db, submission_id, for_update=True)
        if submission.submitted_at is not None and policy == FINALIZE_IDEMPOTENT:
            db.commit()
            return submission
        answers = db.scalars(select(ExamAnswer).where(ExamAnswer.submission_id == submission_id)).all()
        correct_count, score_percent = compute_score(answers, submission.question_ids or [], submission.total_questions)
        stmt = (
            update(ExamSubmission)
            .where(ExamSubmission.id == submission_id)
            .values(submitted_at=_now(), correct_count=correct_count, score_percent=score_percent)
        )
        if policy == FINALIZE_IDEMPOTENT:
            # Compare-and-swap on the OPEN state.
            stmt = stmt.where(ExamSubmission.submitted_at.is_(None))
        result = db.execute(stmt.execution_options(synchronize_session=False))
        db.commit()
    except NotFound:
        db.rollback()
        raise
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Failed to finalize submission {submission_id}")
        raise
    if result.rowcount == 0:
        logger.info(f"Submission {submission_id} was finalized concurrently; returning stored result")
    else:
        logger.info(f"Submission {submission_id} finalized: {correct_count}/{submission.total_questions} ({score_percent:.2f}%)")
    db.refresh(submission)
    return submission


# ============= Reads =============

def get_submission(db: Session, submission_id: str) -> ExamSubmission:
    return _load(db, submission_id)


def get_answers(db: Session, submission_id: str) -> List[ExamAnswer]:
    return list(db.scalars(
        select(ExamAnswer).where(ExamAnswer.submission_id == submission_id).order_by(ExamAnswer.answered_at)
    ).all())


def get_submission_questions(db: Session, submission_id: str) -> List[Question]:
    submission = _load(db, submission_id)
    return get_questions(db, submission.question_ids or [])


def latest_result(db: Session, user_id: str, paper_id: str) -> ExamSubmission:
    submission = db.scalar(
        select(ExamSubmission)
        .where(
            ExamSubmission.user_id == user_id,
            ExamSubmission.exam_paper_id == paper_id,
            ExamSubmission.submitted_at.isnot(None),
        )
        .order_by(ExamSubmission.submitted_at.desc())
        .limit(1)
    )
    if submission is None:
        raise NotFound(f"No finalized submission for paper {paper_id}")
    return submission




def list_history(db: Session, user_id: str, page: int = 1, limit: int = 10, kind: Optional[str] = None) -> Tuple[List[ExamSubmission], int]:
    """Finalized submissions, newest first.

    ``kind`` narrows to ``practice`` (explicit question list) or ``exam``
    (filter-defined) papers.
    """
    stmt = select(ExamSubmission).where(ExamSubmission.user_id == user_id, ExamSubmission.submitted_at.isnot(None))
    if kind is not None:
        explicit_count = func.coalesce(func.json_array_length(ExamPaper.question_ids), 0)
        if kind == "practice":
            condition = explicit_count > 0
        elif kind == "exam":
            condition = explicit_count == 0
        else:
            raise ValueError(f"Unknown history kind: {kind}")
        stmt = stmt.join(ExamPaper, ExamPaper.id == ExamSubmission.exam_paper_id).where(condition)
    total = db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    rows = db.scalars(
        stmt.options(selectinload(ExamSubmission.exam_paper))
        .order_by(ExamSubmission.submitted_at.desc(), ExamSubmission.id)
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    return list(rows), total


# ============= Results =============

@dataclass
class AnswerReview:
    question_id: str
    stem: str
    selected_option: Optional[QuestionOption]
    correct_option: Optional[QuestionOption]
    is_correct: bool


def review_answers(db: Session, submission_id: str) -> List[AnswerReview]:
    answers = db.scalars(
        select(ExamAnswer)
        .where(ExamAnswer.submission_id == submission_id)
        .options(selectinload(ExamAnswer.question))
        .order_by(ExamAnswer.answered_at)
    ).all()
    reviews = []
    for a in answers:
        question = a.question
        selected = next((o for o in question.options if o.id == a.selected_option_id), None)
        reviews.append(AnswerReview(
            question_id=a.question_id,
            stem=question.stem,
            selected_option=selected,
            correct_option=correct_option(question),
            is_correct=a.is_correct,
        ))
    return reviews


def get_result(db: Session, submission_id: str) -> Tuple[ExamSubmission, List[AnswerReview]]:
    """Finalized submission with, per answer, the selected and the correct option.

    Correct options are only revealed once the submission is finalized.
    """
    submission = _load(db, submission_id)
    if submission.submitted_at is None:
        raise InvalidState(f"Submission {submission_id} is not finalized yet")
    return submission, review_answers(db, submission_id)
