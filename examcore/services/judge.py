import logging
from typing import Optional
from examcore.models.orm import Question, QuestionOption

logger = logging.getLogger(__name__)

def correct_option(question: Question) -> Optional[QuestionOption]:
    """First option flagged correct, in stored order.

    Zero or several correct options is a catalog data-quality problem; it is
    logged for out-of-band correction and never raised.
    """
    flagged = [o for o in question.options if o.is_correct]
    if not flagged:
        logger.warning(f"Question {question.id} has no option marked correct")
        return None
    if len(flagged) > 1:
        logger.warning(f"Question {question.id} has {len(flagged)} options marked correct; using {flagged[0].id}")
    return flagged[0]

def judge(question: Question, selected_option_id: Optional[str]) -> bool:
    if selected_option_id is None:
        return False
    correct = correct_option(question)
    return correct is not None and correct.id == selected_option_id
