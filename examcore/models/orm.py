from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy import String, Text, Boolean, Integer, Float, ForeignKey, JSON, DateTime, Index, func
from datetime import datetime
from typing import Optional, List
import enum
import uuid

class Base(DeclarativeBase): pass

def _uuid() -> str:
    return str(uuid.uuid4())

class SubmissionStatus(str, enum.Enum):
    OPEN = "open"
    FINALIZED = "finalized"

# ========== Catalog Models (read-only to the engine) ==========

class Subject(Base):
    __tablename__ = "subjects"
    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255))

class Topic(Base):
    __tablename__ = "topics"
    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    subject_id: Mapped[Optional[str]] = mapped_column(String(64), ForeignKey("subjects.id"), nullable=True)
    name: Mapped[str] = mapped_column(String(255))

class Subtopic(Base):
    __tablename__ = "subtopics"
    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    topic_id: Mapped[Optional[str]] = mapped_column(String(64), ForeignKey("topics.id"), nullable=True)
    name: Mapped[str] = mapped_column(String(255))

class Question(Base):
    __tablename__ = "questions"
    __table_args__ = (
        Index("idx_questions_subject", "subject_id"),
        Index("idx_questions_topic", "topic_id"),
        Index("idx_questions_subtopic", "subtopic_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    subject_id: Mapped[Optional[str]] = mapped_column(String(64), ForeignKey("subjects.id"), nullable=True)
    topic_id: Mapped[Optional[str]] = mapped_column(String(64), ForeignKey("topics.id"), nullable=True)
    subtopic_id: Mapped[Optional[str]] = mapped_column(String(64), ForeignKey("subtopics.id"), nullable=True)
    stem: Mapped[str] = mapped_column(Text)
    explanation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    difficulty: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    options: Mapped[List["QuestionOption"]] = relationship(
        back_populates="question",
        order_by="[QuestionOption.order, QuestionOption.id]",
        lazy="selectin",
    )

class QuestionOption(Base):
    __tablename__ = "question_options"
    __table_args__ = (Index("idx_qo_question", "question_id"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    question_id: Mapped[str] = mapped_column(String(64), ForeignKey("questions.id", ondelete="CASCADE"))
    text: Mapped[str] = mapped_column(Text)
    order: Mapped[int] = mapped_column(Integer, default=0)
    is_correct: Mapped[bool] = mapped_column(Boolean, default=False)

    question: Mapped["Question"] = relationship(back_populates="options")

# ========== Engine Models ==========

class ExamPaper(Base):
    __tablename__ = "exam_papers"
    __table_args__ = (Index("idx_ep_created", "created_at"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    subject_ids: Mapped[List[str]] = mapped_column(JSON, default=list)
    topic_ids: Mapped[List[str]] = mapped_column(JSON, default=list)
    subtopic_ids: Mapped[List[str]] = mapped_column(JSON, default=list)
    # Explicit list; empty means "resolve via filters at attempt time".
    question_ids: Mapped[List[str]] = mapped_column(JSON, default=list)
    time_limit_min: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    submissions: Mapped[List["ExamSubmission"]] = relationship(back_populates="exam_paper")

    @property
    def is_explicit(self) -> bool:
        return bool(self.question_ids)

class ExamSubmission(Base):
    __tablename__ = "exam_submissions"
    __table_args__ = (
        Index("idx_es_user", "user_id"),
        Index("idx_es_paper", "exam_paper_id"),
        Index("idx_es_submitted", "submitted_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(255))
    exam_paper_id: Mapped[str] = mapped_column(String(64), ForeignKey("exam_papers.id"))
    # Snapshot taken at start; never recomputed from the paper.
    question_ids: Mapped[List[str]] = mapped_column(JSON, default=list)
    total_questions: Mapped[int] = mapped_column(Integer)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    correct_count: Mapped[int] = mapped_column(Integer, default=0)
    score_percent: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    exam_paper: Mapped["ExamPaper"] = relationship(back_populates="submissions")
    answers: Mapped[List["ExamAnswer"]] = relationship(back_populates="submission", order_by="ExamAnswer.answered_at")

    @property
    def status(self) -> SubmissionStatus:
        return SubmissionStatus.OPEN if self.submitted_at is None else SubmissionStatus.FINALIZED

    @property
    def duration_minutes(self) -> Optional[int]:
        if self.submitted_at is None or self.started_at is None:
            return None
        return round((self.submitted_at - self.started_at).total_seconds() / 60)

class ExamAnswer(Base):
    __tablename__ = "exam_answers"
    __table_args__ = (Index("idx_ea_question", "question_id"),)

    # Composite key: at most one answer per (submission, question).
    submission_id: Mapped[str] = mapped_column(String(64), ForeignKey("exam_submissions.id"), primary_key=True)
    question_id: Mapped[str] = mapped_column(String(64), ForeignKey("questions.id"), primary_key=True)
    selected_option_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    is_correct: Mapped[bool] = mapped_column(Boolean, default=False)
    answered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    submission: Mapped["ExamSubmission"] = relationship(back_populates="answers")
    question: Mapped["Question"] = relationship()
