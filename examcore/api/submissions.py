import logging
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from typing import List, Literal, Optional
from datetime import datetime
from redis.exceptions import RedisError
from sqlalchemy.orm import Session
from examcore.core.config import settings
from examcore.core.database import get_db
from examcore.core.auth import require_roles, get_current_user, ensure_owner, TokenData
from examcore.models.orm import ExamAnswer, ExamSubmission, Question, QuestionOption
from examcore.services import papers, submissions
from examcore.jobs.finalize_job import schedule_auto_finalize

logger = logging.getLogger(__name__)

router = APIRouter()

class SubmissionStart(BaseModel):
    paper_id: str

class SubmissionStarted(BaseModel):
    submission_id: str
    exam_paper_id: str
    question_ids: List[str]
    total_questions: int
    started_at: datetime
    time_limit_min: Optional[int]

class AnswerSubmit(BaseModel):
    selected_option_id: Optional[str] = None

class AnswerOut(BaseModel):
    submission_id: str
    question_id: str
    selected_option_id: Optional[str]
    is_correct: bool
    answered_at: datetime

class SubmissionOut(BaseModel):
    id: str
    user_id: str
    exam_paper_id: str
    status: Literal["open", "finalized"]
    question_ids: List[str]
    total_questions: int
    correct_count: int
    score_percent: Optional[float]
    started_at: datetime
    submitted_at: Optional[datetime]
    duration_minutes: Optional[int]

class SubmissionDetail(SubmissionOut):
    answers: List[AnswerOut]

class OptionOut(BaseModel):
    id: str
    text: str
    is_correct: Optional[bool] = None

class QuestionOut(BaseModel):
    id: str
    stem: str
    subject_id: Optional[str]
    topic_id: Optional[str]
    subtopic_id: Optional[str]
    difficulty: Optional[str]
    explanation: Optional[str] = None
    options: List[OptionOut]

class HistoryPage(BaseModel):
    submissions: List[SubmissionOut]
    total: int
    page: int
    limit: int

class ReviewOptionOut(BaseModel):
    id: str
    text: str

class AnswerReviewOut(BaseModel):
    question_id: str
    stem: str
    selected_option: Optional[ReviewOptionOut]
    correct_option: Optional[ReviewOptionOut]
    is_correct: bool

class ResultOut(SubmissionOut):
    paper_title: str
    answers: List[AnswerReviewOut]

def answer_out(a: ExamAnswer) -> AnswerOut:
    return AnswerOut(submission_id=a.submission_id, question_id=a.question_id, selected_option_id=a.selected_option_id,
                     is_correct=a.is_correct, answered_at=a.answered_at)

def submission_out(s: ExamSubmission) -> SubmissionOut:
    return SubmissionOut(
        id=s.id, user_id=s.user_id, exam_paper_id=s.exam_paper_id, status=s.status.value,
        question_ids=s.question_ids or [], total_questions=s.total_questions, correct_count=s.correct_count,
        score_percent=s.score_percent, started_at=s.started_at, submitted_at=s.submitted_at,
        duration_minutes=s.duration_minutes,
    )

def _option(o: Optional[QuestionOption]) -> Optional[ReviewOptionOut]:
    return ReviewOptionOut(id=o.id, text=o.text) if o is not None else None

def result_out(s: ExamSubmission, reviews: List[submissions.AnswerReview]) -> ResultOut:
    return ResultOut(
        **submission_out(s).model_dump(), paper_title=s.exam_paper.title,
        answers=[AnswerReviewOut(question_id=r.question_id, stem=r.stem, selected_option=_option(r.selected_option),
                                 correct_option=_option(r.correct_option), is_correct=r.is_correct) for r in reviews],
    )

def question_out(q: Question, reveal: bool) -> QuestionOut:
    # Correct flags and explanations stay hidden until the attempt is finalized.
    return QuestionOut(
        id=q.id, stem=q.stem, subject_id=q.subject_id, topic_id=q.topic_id, subtopic_id=q.subtopic_id,
        difficulty=q.difficulty, explanation=q.explanation if reveal else None,
        options=[OptionOut(id=o.id, text=o.text, is_correct=o.is_correct if reveal else None) for o in q.options],
    )

def _owned(db: Session, submission_id: str, user: TokenData) -> ExamSubmission:
    submission = submissions.get_submission(db, submission_id)
    ensure_owner(submission.user_id, user)
    return submission

@router.post("", response_model=SubmissionStarted, status_code=201)
def start_submission(payload: SubmissionStart, user: TokenData = Depends(require_roles("student", "admin")), db: Session = Depends(get_db)):
    submission, question_ids = submissions.start(db, user.sub, payload.paper_id)
    paper = papers.get_paper(db, payload.paper_id)
    if settings.AUTO_FINALIZE_ENABLED and paper.time_limit_min:
        try:
            schedule_auto_finalize(submission.id, paper.time_limit_min)
        except RedisError:
            # The time limit is advisory; the client can still finalize.
            logger.exception(f"Could not schedule timeout finalize for submission {submission.id}")
    return SubmissionStarted(
        submission_id=submission.id, exam_paper_id=submission.exam_paper_id, question_ids=question_ids,
        total_questions=submission.total_questions, started_at=submission.started_at, time_limit_min=paper.time_limit_min,
    )

@router.get("", response_model=HistoryPage)
def list_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    kind: Optional[Literal["practice", "exam"]] = None,
    user: TokenData = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows, total = submissions.list_history(db, user.sub, page=page, limit=limit, kind=kind)
    return HistoryPage(submissions=[submission_out(s) for s in rows], total=total, page=page, limit=limit)

@router.get("/{submission_id}", response_model=SubmissionDetail)
def get_submission(submission_id: str, user: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    submission = _owned(db, submission_id, user)
    answers = submissions.get_answers(db, submission_id)
    return SubmissionDetail(**submission_out(submission).model_dump(), answers=[answer_out(a) for a in answers])

@router.get("/{submission_id}/questions", response_model=List[QuestionOut])
def get_submission_questions(submission_id: str, user: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    submission = _owned(db, submission_id, user)
    reveal = submission.submitted_at is not None
    return [question_out(q, reveal) for q in submissions.get_submission_questions(db, submission_id)]

@router.put("/{submission_id}/answers/{question_id}", response_model=AnswerOut)
def submit_answer(submission_id: str, question_id: str, payload: AnswerSubmit, user: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    _owned(db, submission_id, user)
    answer = submissions.submit_answer(db, submission_id, question_id, payload.selected_option_id)
    return answer_out(answer)

@router.post("/{submission_id}/finalize", response_model=SubmissionOut)
def finalize_submission(submission_id: str, user: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    _owned(db, submission_id, user)
    return submission_out(submissions.finalize(db, submission_id))

@router.get("/{submission_id}/result", response_model=ResultOut)
def get_result(submission_id: str, user: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    """Per-answer review with the selected and correct option; 409 while the submission is open."""
    _owned(db, submission_id, user)
    submission, reviews = submissions.get_result(db, submission_id)
    return result_out(submission, reviews)
