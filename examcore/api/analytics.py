from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime
from sqlalchemy.orm import Session
from examcore.core.database import get_db
from examcore.core.auth import get_current_user, TokenData
from examcore.services.analytics import Dimension, aggregate_by, recent_scores, summarize

router = APIRouter()

class DimensionRow(BaseModel):
    dimension_id: Optional[str]
    dimension_name: Optional[str]
    total: int
    correct: int
    score_percent: float

class Summary(BaseModel):
    exams_taken: int
    average_score: float
    questions_answered: int
    correct_answers: int

class ScorePointOut(BaseModel):
    submission_id: str
    paper_id: str
    paper_title: str
    score_percent: float
    submitted_at: datetime

@router.get("/summary", response_model=Summary)
def performance_summary(user: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    s = summarize(db, user.sub)
    return Summary(exams_taken=s.exams_taken, average_score=s.average_score,
                   questions_answered=s.questions_answered, correct_answers=s.correct_answers)

@router.get("/recent", response_model=List[ScorePointOut])
def score_trend(limit: int = Query(10, ge=1, le=50), user: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    return [ScorePointOut(submission_id=p.submission_id, paper_id=p.paper_id, paper_title=p.paper_title,
                          score_percent=p.score_percent, submitted_at=p.submitted_at)
            for p in recent_scores(db, user.sub, limit=limit)]

@router.get("/{dimension}", response_model=List[DimensionRow])
def aggregate(dimension: Dimension, user: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    """Answer totals per subject, topic, subtopic or difficulty. Untagged questions report as ``dimension_id: null``."""
    return [
        DimensionRow(dimension_id=r.dimension_id, dimension_name=r.dimension_name, total=r.total,
                     correct=r.correct, score_percent=r.score_percent)
        for r in aggregate_by(db, user.sub, dimension)
    ]
