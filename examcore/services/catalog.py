"""
Read-only access to the question catalog.

The catalog is owned by the authoring side of the platform; the engine only
looks questions up and filters them by subject/topic/subtopic.
"""
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from examcore.models.orm import Question


def get_question(db: Session, question_id: str) -> Optional[Question]:
    return db.get(Question, question_id)


def get_questions(db: Session, question_ids: Sequence[str]) -> List[Question]:
    """Questions for ``question_ids`` in the given order; unknown ids are skipped."""
    if not question_ids:
        return []
    rows = db.scalars(select(Question).where(Question.id.in_(set(question_ids)))).all()
    by_id = {q.id: q for q in rows}
    return [by_id[qid] for qid in question_ids if qid in by_id]


def find_question_ids(
    db: Session,
    subject_ids: Sequence[str] = (),
    topic_ids: Sequence[str] = (),
    subtopic_ids: Sequence[str] = (),
    limit: int = 50,
) -> List[str]:
    """Ids of questions matching every non-empty filter, in stable catalog order."""
    stmt = select(Question.id)
    if subject_ids:
        stmt = stmt.where(Question.subject_id.in_(list(subject_ids)))
    if topic_ids:
        stmt = stmt.where(Question.topic_id.in_(list(topic_ids)))
    if subtopic_ids:
        stmt = stmt.where(Question.subtopic_id.in_(list(subtopic_ids)))
    stmt = stmt.order_by(Question.created_at, Question.id).limit(limit)
    return list(db.scalars(stmt).all())
