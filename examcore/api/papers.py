from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, constr
from typing import List, Optional
from datetime import datetime
from sqlalchemy.orm import Session
from examcore.core.database import get_db
from examcore.core.auth import require_roles, get_current_user, TokenData
from examcore.models.orm import ExamPaper
from examcore.services import papers, submissions
from examcore.services.analytics import paper_statistics
from examcore.api.submissions import ResultOut, result_out

router = APIRouter()

class PaperCreate(BaseModel):
    title: constr(min_length=1, max_length=255)
    description: Optional[str] = None
    subject_ids: List[str] = Field(default_factory=list)
    topic_ids: List[str] = Field(default_factory=list)
    subtopic_ids: List[str] = Field(default_factory=list)
    question_ids: List[str] = Field(default_factory=list)
    time_limit_min: Optional[int] = Field(default=None, ge=1, le=600)

class PaperOut(BaseModel):
    id: str
    title: str
    description: Optional[str]
    subject_ids: List[str]
    topic_ids: List[str]
    subtopic_ids: List[str]
    question_ids: List[str]
    question_count: int
    time_limit_min: Optional[int]
    created_at: Optional[datetime]

class PaperPage(BaseModel):
    papers: List[PaperOut]
    total: int
    page: int
    limit: int

class PaperStats(BaseModel):
    paper_id: str
    total_submissions: int
    completed_count: int
    average_score: float
    highest_score: Optional[float]
    lowest_score: Optional[float]
    completion_rate: float

def paper_out(p: ExamPaper) -> PaperOut:
    return PaperOut(
        id=p.id, title=p.title, description=p.description,
        subject_ids=p.subject_ids or [], topic_ids=p.topic_ids or [], subtopic_ids=p.subtopic_ids or [],
        question_ids=p.question_ids or [], question_count=len(p.question_ids or []),
        time_limit_min=p.time_limit_min, created_at=p.created_at,
    )

@router.post("", response_model=PaperOut, status_code=201)
def create_paper(payload: PaperCreate, user: TokenData = Depends(require_roles("author", "admin")), db: Session = Depends(get_db)):
    paper = papers.create_paper(db, created_by=user.sub, **payload.model_dump())
    return paper_out(paper)

@router.get("", response_model=PaperPage, dependencies=[Depends(get_current_user)])
def list_papers(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    subject_id: Optional[str] = None,
    db: Session = Depends(get_db),
):
    rows, total = papers.list_papers(db, page=page, limit=limit, subject_id=subject_id)
    return PaperPage(papers=[paper_out(p) for p in rows], total=total, page=page, limit=limit)

@router.get("/{paper_id}", response_model=PaperOut, dependencies=[Depends(get_current_user)])
def get_paper(paper_id: str, db: Session = Depends(get_db)):
    return paper_out(papers.get_paper(db, paper_id))

@router.get("/{paper_id}/result", response_model=ResultOut)
def latest_result(paper_id: str, user: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    submission = submissions.latest_result(db, user.sub, paper_id)
    return result_out(submission, submissions.review_answers(db, submission.id))

@router.get("/{paper_id}/statistics", response_model=PaperStats, dependencies=[Depends(require_roles("author", "admin"))])
def get_statistics(paper_id: str, db: Session = Depends(get_db)):
    s = paper_statistics(db, paper_id)
    return PaperStats(paper_id=s.paper_id, total_submissions=s.total_submissions, completed_count=s.completed_count,
                      average_score=s.average_score, highest_score=s.highest_score, lowest_score=s.lowest_score,
                      completion_rate=s.completion_rate)
