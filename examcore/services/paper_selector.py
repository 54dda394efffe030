import logging
from typing import List, Optional
from sqlalchemy.orm import Session
from examcore.core.config import settings
from examcore.models.orm import ExamPaper
from examcore.services.catalog import find_question_ids

logger = logging.getLogger(__name__)

def resolve_question_ids(db: Session, paper: ExamPaper, limit: Optional[int] = None) -> List[str]:
    """Concrete, ordered question ids for ``paper``.

    Explicit papers are returned verbatim and never re-resolved. Filter papers
    AND together whichever of subject/topic/subtopic sets are non-empty and
    take at most ``limit`` ids in catalog order. A paper with neither ids nor
    filters resolves to an empty list: a zero-question paper, not an error.
    """
    if paper.question_ids:
        return list(paper.question_ids)
    limit = settings.DEFAULT_PAPER_LIMIT if limit is None else min(limit, settings.MAX_PAPER_LIMIT)
    if limit <= 0:
        return []
    subject_ids = paper.subject_ids or []
    topic_ids = paper.topic_ids or []
    subtopic_ids = paper.subtopic_ids or []
    if not (subject_ids or topic_ids or subtopic_ids):
        logger.info(f"Paper {paper.id} has no question ids and no filters; resolving to zero questions")
        return []
    ids = find_question_ids(db, subject_ids, topic_ids, subtopic_ids, limit=limit)
    logger.debug(f"Paper {paper.id} resolved {len(ids)} question(s) with limit {limit}")
    return ids
