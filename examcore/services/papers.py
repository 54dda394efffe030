"""Exam paper store."""
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from examcore.core.errors import NotFound
from examcore.models.orm import ExamPaper


def _unique(ids: Optional[Sequence[str]]) -> List[str]:
    # Keep first occurrence so explicit papers stay in author order.
    return list(dict.fromkeys(ids or []))


def create_paper(
    db: Session,
    title: str,
    description: Optional[str] = None,
    subject_ids: Optional[Sequence[str]] = None,
    topic_ids: Optional[Sequence[str]] = None,
    subtopic_ids: Optional[Sequence[str]] = None,
    question_ids: Optional[Sequence[str]] = None,
    time_limit_min: Optional[int] = None,
    created_by: Optional[str] = None,
) -> ExamPaper:
    paper = ExamPaper(
        title=title,
        description=description,
        subject_ids=_unique(subject_ids),
        topic_ids=_unique(topic_ids),
        subtopic_ids=_unique(subtopic_ids),
        question_ids=_unique(question_ids),
        time_limit_min=time_limit_min,
        created_by=created_by,
    )
    db.add(paper)
    db.commit()
    db.refresh(paper)
    return paper


def get_paper(db: Session, paper_id: str) -> ExamPaper:
    paper = db.get(ExamPaper, paper_id)
    if paper is None:
        raise NotFound(f"Exam paper {paper_id} not found")
    return paper


def list_papers(db: Session, page: int = 1, limit: int = 10, subject_id: Optional[str] = None) -> Tuple[List[ExamPaper], int]:
    stmt = select(ExamPaper)
    if subject_id:
        # JSON arrays have no portable containment operator; filter after load.
        papers = [p for p in db.scalars(stmt.order_by(ExamPaper.created_at.desc(), ExamPaper.id)).all() if subject_id in (p.subject_ids or [])]
        start = (page - 1) * limit
        return papers[start:start + limit], len(papers)
    total = db.scalar(select(func.count()).select_from(ExamPaper)) or 0
    rows = db.scalars(stmt.order_by(ExamPaper.created_at.desc(), ExamPaper.id).offset((page - 1) * limit).limit(limit)).all()
    return list(rows), total
