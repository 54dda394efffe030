"""
Per-dimension performance roll-ups over a user's answer history.

Every answer of every submission owned by the user is joined to its question
and grouped by the question's subject, topic, subtopic or difficulty. Questions
without a value for the requested dimension form their own ``None`` group.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from examcore.core.config import settings
from examcore.models.orm import ExamAnswer, ExamPaper, ExamSubmission, Question, Subject, Subtopic, Topic
from examcore.services.papers import get_paper

logger = logging.getLogger(__name__)


class Dimension(str, enum.Enum):
    SUBJECT = "subject"
    TOPIC = "topic"
    SUBTOPIC = "subtopic"
    DIFFICULTY = "difficulty"


@dataclass
class DimensionStat:
    dimension_id: Optional[str]
    dimension_name: Optional[str]
    total: int
    correct: int

    @property
    def score_percent(self) -> float:
        return self.correct / self.total * 100 if self.total else 0.0


@dataclass
class PerformanceSummary:
    exams_taken: int
    average_score: float
    questions_answered: int
    correct_answers: int


@dataclass
class ScorePoint:
    submission_id: str
    paper_id: str
    paper_title: str
    score_percent: float
    submitted_at: datetime


@dataclass
class PaperStatistics:
    paper_id: str
    total_submissions: int
    completed_count: int
    average_score: float
    highest_score: Optional[float]
    lowest_score: Optional[float]

    @property
    def completion_rate(self) -> float:
        return self.completed_count / self.total_submissions * 100 if self.total_submissions else 0.0


def _aggregate(db: Session, user_id: str, key_column, name_table, include_open: Optional[bool]) -> List[DimensionStat]:
    """Shared reduce step: GROUP BY the dimension id, count answers and correct ones.

    ``name_table`` resolves display names; without one the key is its own name.
    """
    include_open = settings.ANALYTICS_INCLUDE_OPEN if include_open is None else include_open
    correct = func.sum(case((ExamAnswer.is_correct.is_(True), 1), else_=0))
    name_column = key_column if name_table is None else name_table.name
    stmt = (
        select(key_column.label("dimension_id"), name_column.label("dimension_name"), func.count().label("total"), correct.label("correct"))
        .select_from(ExamAnswer)
        .join(ExamSubmission, ExamSubmission.id == ExamAnswer.submission_id)
        .join(Question, Question.id == ExamAnswer.question_id)
        .where(ExamSubmission.user_id == user_id)
    )
    if name_table is None:
        stmt = stmt.group_by(key_column)
    else:
        stmt = stmt.outerjoin(name_table, name_table.id == key_column).group_by(key_column, name_table.name)
    if not include_open:
        stmt = stmt.where(ExamSubmission.submitted_at.isnot(None))
    rows = db.execute(stmt).all()
    return [DimensionStat(dimension_id=r[0], dimension_name=r[1], total=int(r[2]), correct=int(r[3] or 0)) for r in rows]


def aggregate_by_subject(db: Session, user_id: str, include_open: Optional[bool] = None) -> List[DimensionStat]:
    return _aggregate(db, user_id, Question.subject_id, Subject, include_open)


def aggregate_by_topic(db: Session, user_id: str, include_open: Optional[bool] = None) -> List[DimensionStat]:
    return _aggregate(db, user_id, Question.topic_id, Topic, include_open)


def aggregate_by_subtopic(db: Session, user_id: str, include_open: Optional[bool] = None) -> List[DimensionStat]:
    return _aggregate(db, user_id, Question.subtopic_id, Subtopic, include_open)


def aggregate_by_difficulty(db: Session, user_id: str, include_open: Optional[bool] = None) -> List[DimensionStat]:
    return _aggregate(db, user_id, Question.difficulty, None, include_open)


AGGREGATORS: Dict[Dimension, Callable[..., List[DimensionStat]]] = {
    Dimension.SUBJECT: aggregate_by_subject,
    Dimension.TOPIC: aggregate_by_topic,
    Dimension.SUBTOPIC: aggregate_by_subtopic,
    Dimension.DIFFICULTY: aggregate_by_difficulty,
}


def aggregate_by(db: Session, user_id: str, dimension: Dimension, include_open: Optional[bool] = None) -> List[DimensionStat]:
    return AGGREGATORS[Dimension(dimension)](db, user_id, include_open=include_open)


def summarize(db: Session, user_id: str) -> PerformanceSummary:
    """Dashboard totals over the user's finalized submissions."""
    exams_taken, average = db.execute(
        select(func.count(ExamSubmission.id), func.avg(func.coalesce(ExamSubmission.score_percent, 0.0)))
        .where(ExamSubmission.user_id == user_id, ExamSubmission.submitted_at.isnot(None))
    ).one()
    answered, correct = db.execute(
        select(func.count(), func.sum(case((ExamAnswer.is_correct.is_(True), 1), else_=0)))
        .select_from(ExamAnswer)
        .join(ExamSubmission, ExamSubmission.id == ExamAnswer.submission_id)
        .where(ExamSubmission.user_id == user_id, ExamSubmission.submitted_at.isnot(None))
    ).one()
    return PerformanceSummary(
        exams_taken=int(exams_taken or 0),
        average_score=round(float(average or 0.0), 2),
        questions_answered=int(answered or 0),
        correct_answers=int(correct or 0),
    )


def recent_scores(db: Session, user_id: str, limit: int = 10) -> List[ScorePoint]:
    """Score trend: the user's last ``limit`` finalized submissions, newest first."""
    rows = db.execute(
        select(ExamSubmission.id, ExamSubmission.exam_paper_id, ExamPaper.title, ExamSubmission.score_percent, ExamSubmission.submitted_at)
        .join(ExamPaper, ExamPaper.id == ExamSubmission.exam_paper_id)
        .where(ExamSubmission.user_id == user_id, ExamSubmission.submitted_at.isnot(None))
        .order_by(ExamSubmission.submitted_at.desc(), ExamSubmission.id)
        .limit(limit)
    ).all()
    return [ScorePoint(submission_id=r[0], paper_id=r[1], paper_title=r[2], score_percent=float(r[3] or 0.0), submitted_at=r[4]) for r in rows]


def paper_statistics(db: Session, paper_id: str) -> PaperStatistics:
    """Attempt counts and score spread for one paper across all users.

    Scores are taken over finalized submissions only; highest and lowest are
    ``None`` until one exists.
    """
    paper = get_paper(db, paper_id)
    total, completed = db.execute(
        select(func.count(ExamSubmission.id), func.count(ExamSubmission.submitted_at))
        .where(ExamSubmission.exam_paper_id == paper.id)
    ).one()
    score = func.coalesce(ExamSubmission.score_percent, 0.0)
    average, highest, lowest = db.execute(
        select(func.avg(score), func.max(score), func.min(score))
        .where(ExamSubmission.exam_paper_id == paper.id, ExamSubmission.submitted_at.isnot(None))
    ).one()
    return PaperStatistics(
        paper_id=paper.id,
        total_submissions=int(total or 0),
        completed_count=int(completed or 0),
        average_score=round(float(average or 0.0), 2),
        highest_score=None if highest is None else round(float(highest), 2),
        lowest_score=None if lowest is None else round(float(lowest), 2),
    )
