"""
Question import API endpoints
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from exam_engine.database import get_db
from exam_engine.schemas.question import QuestionCreate, QuestionCreated
from exam_engine.services.question_store import question_store

router = APIRouter(prefix="/api/questions", tags=["questions"])
logger = logging.getLogger(__name__)


@router.post("", response_model=QuestionCreated, status_code=201)
async def import_question(payload: QuestionCreate, db: Session = Depends(get_db)):
    """
    Import a question into the bank

    - standalone: text, choices, correctIndex
    - comprehension: title text, passage and inline children; children
      inherit module and organization
    """
    try:
        question = question_store.create(db, payload)
        db.commit()
        db.refresh(question)
    except Exception as e:
        logger.error(f"Failed to import question: {str(e)}")
        db.rollback()
        raise HTTPException(status_code=500, detail=f"Failed to import question: {str(e)}")

    logger.info(f"Question imported: {question.id} ({question.variant})")
    return QuestionCreated(
        id=question.id,
        variant=question.variant,
        child_ids=list(question.child_ids or []),
    )
