"""
Question store - read access to the question bank plus import helpers
"""
import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from exam_engine.models import Question
from exam_engine.models.question import STANDALONE, COMPREHENSION
from exam_engine.schemas.question import QuestionCreate

logger = logging.getLogger(__name__)


class QuestionStore:
    """
    Queries over the questions table

    Scope filter: module matches case-insensitively; an organization sees its
    own questions plus global ones (organization_id NULL), no organization
    sees only global ones.
    """

    def _scoped(self, db: Session, module: Optional[str], organization_id: Optional[str]):
        query = db.query(Question)
        if module:
            query = query.filter(func.lower(Question.module) == module.strip().lower())
        if organization_id:
            query = query.filter(
                or_(Question.organization_id == organization_id, Question.organization_id.is_(None))
            )
        else:
            query = query.filter(Question.organization_id.is_(None))
        return query

    def find_by_id(self, db: Session, question_id: str) -> Optional[Question]:
        if not question_id:
            return None
        return db.query(Question).filter(Question.id == str(question_id)).first()

    def find_by_ids(self, db: Session, question_ids: Iterable[str]) -> List[Question]:
        ids = list({str(qid) for qid in question_ids if qid})
        if not ids:
            return []
        return db.query(Question).filter(Question.id.in_(ids)).all()

    def map_by_ids(self, db: Session, question_ids: Iterable[str]) -> Dict[str, Question]:
        """find_by_ids keyed by id"""
        return {q.id: q for q in self.find_by_ids(db, question_ids)}

    def sample(
        self,
        db: Session,
        count: int,
        module: Optional[str] = None,
        organization_id: Optional[str] = None
    ) -> List[Question]:
        """
        Uniform random sample without replacement

        Returns at most count questions; fewer when the pool is smaller.
        """
        if count <= 0:
            return []
        return (
            self._scoped(db, module, organization_id)
            .order_by(func.random())
            .limit(count)
            .all()
        )

    def count_matching(
        self,
        db: Session,
        module: Optional[str] = None,
        organization_id: Optional[str] = None
    ) -> int:
        return self._scoped(db, module, organization_id).count()

    def find_matching(
        self,
        db: Session,
        module: Optional[str] = None,
        organization_id: Optional[str] = None
    ) -> List[Question]:
        """Whole scope in stable insertion order"""
        return (
            self._scoped(db, module, organization_id)
            .order_by(Question.created_at, Question.id)
            .all()
        )

    def create(self, db: Session, payload: QuestionCreate) -> Question:
        """
        Import a standalone question, or a comprehension passage together
        with its children (children inherit module and organization)
        """
        if payload.variant == STANDALONE:
            question = Question(
                variant=STANDALONE,
                text=payload.text,
                choices=list(payload.choices),
                correct_index=payload.correct_index,
                module=payload.module,
                organization_id=payload.organization_id,
                tags=list(payload.tags),
                difficulty=payload.difficulty,
            )
            db.add(question)
            db.flush()
            return question

        child_ids = []
        for child in payload.children:
            child_question = Question(
                variant=STANDALONE,
                text=child.text,
                choices=list(child.choices),
                correct_index=child.correct_index,
                module=payload.module,
                organization_id=payload.organization_id,
                tags=list(child.tags),
                difficulty=child.difficulty or payload.difficulty,
            )
            db.add(child_question)
            db.flush()
            child_ids.append(child_question.id)

        parent = Question(
            variant=COMPREHENSION,
            text=payload.text,
            passage=payload.passage,
            child_ids=child_ids,
            choices=[],
            module=payload.module,
            organization_id=payload.organization_id,
            tags=list(payload.tags),
            difficulty=payload.difficulty,
        )
        db.add(parent)
        db.flush()
        logger.info(f"Imported comprehension passage {parent.id} with {len(child_ids)} children")
        return parent

    def delete(self, db: Session, question_id: str) -> bool:
        question = self.find_by_id(db, question_id)
        if not question:
            return False
        db.delete(question)
        db.flush()
        return True


# Global instance
question_store = QuestionStore()
