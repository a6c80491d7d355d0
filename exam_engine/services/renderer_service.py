"""
Exam rendering service
Rebuilds the learner-facing exam from a persisted instance and live questions
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from exam_engine.database import utcnow
from exam_engine.exceptions import ExamNotFound
from exam_engine.models import Question
from exam_engine.schemas.exam import (
    ChoiceView,
    ComprehensionBlock,
    Degradation,
    ExamInstanceData,
    ExamView,
    QuestionBlock,
)
from exam_engine.services.shuffle_service import shuffle_service
from exam_engine.services.question_store import question_store
from exam_engine.services.exam_store import exam_store

logger = logging.getLogger(__name__)


class ExamRenderer:
    """
    Walks an instance's token sequence:
    - parent marker -> comprehension block (passage + ordered children)
    - question token -> question block with choices in display order

    Ids that no longer resolve are skipped. Children whose passage was
    deleted are promoted to top-level question blocks so they stay
    answerable. Correct indices are never emitted.
    """

    def render(self, db: Session, exam_id: str, now: Optional[datetime] = None) -> ExamView:
        """
        Render a persisted exam

        Raises:
            ExamNotFound: unknown exam id
        """
        snapshot = exam_store.get_snapshot(db, exam_id)
        if not snapshot:
            raise ExamNotFound(f"Exam {exam_id} not found")

        token_ids = [token.id for token in snapshot.sequence]
        questions = question_store.map_by_ids(db, token_ids)
        return self.render_snapshot(snapshot, questions, now=now)

    def render_snapshot(
        self,
        snapshot: ExamInstanceData,
        questions: Dict[str, Question],
        now: Optional[datetime] = None
    ) -> ExamView:
        now = now or utcnow()
        warnings: List[Degradation] = []
        series = []
        open_passage: Optional[Tuple[str, ComprehensionBlock]] = None

        for position, token in enumerate(snapshot.sequence):
            mapping = snapshot.choice_mapping[position] if position < len(snapshot.choice_mapping) else None

            if token.is_parent:
                parent = questions.get(token.id)
                if parent is None or not parent.is_comprehension:
                    self._unresolvable(warnings, token.id, snapshot.exam_id)
                    open_passage = None
                    continue
                block = ComprehensionBlock(
                    id=parent.id,
                    title=parent.text,
                    passage=parent.passage or parent.text or "",
                    children=[],
                    tags=list(parent.tags or []),
                    difficulty=parent.difficulty or "medium",
                )
                series.append(block)
                open_passage = (parent.id, block)
                continue

            question = questions.get(token.id)
            if question is None or question.is_comprehension:
                self._unresolvable(warnings, token.id, snapshot.exam_id)
                continue

            question_block = self._question_block(question, mapping, warnings, snapshot.exam_id)
            if token.parent_id and open_passage and open_passage[0] == token.parent_id:
                open_passage[1].children.append(question_block)
            else:
                series.append(question_block)

        expired = bool(snapshot.expires_at and snapshot.expires_at <= now)
        return ExamView(
            exam_id=snapshot.exam_id,
            series=series,
            expired=expired,
            submittable=not expired and snapshot.finished_at is None,
            expires_at=snapshot.expires_at,
            warnings=warnings,
        )

    def _question_block(
        self,
        question: Question,
        mapping: Optional[List[int]],
        warnings: List[Degradation],
        exam_id: Optional[str]
    ) -> QuestionBlock:
        canonical = question.choice_texts()
        effective, malformed = shuffle_service.resolve(mapping, len(canonical))
        if malformed:
            logger.warning(
                f"Exam {exam_id}: stored mapping {mapping} does not fit {len(canonical)} choices "
                f"of question {question.id}, using canonical order"
            )
            warnings.append(Degradation(
                code="malformed_mapping",
                question_id=question.id,
                detail=f"stored mapping does not fit {len(canonical)} choices, canonical order used",
            ))

        return QuestionBlock(
            id=question.id,
            text=question.text,
            choices=[ChoiceView(text=text) for text in shuffle_service.apply(canonical, effective)],
            tags=list(question.tags or []),
            difficulty=question.difficulty or "medium",
        )

    def _unresolvable(self, warnings: List[Degradation], question_id: str, exam_id: Optional[str]) -> None:
        logger.warning(f"Exam {exam_id}: question {question_id} no longer exists, skipping")
        warnings.append(Degradation(
            code="unresolvable_question",
            question_id=question_id,
            detail="question no longer exists in the question bank",
        ))


# Global instance
exam_renderer = ExamRenderer()
