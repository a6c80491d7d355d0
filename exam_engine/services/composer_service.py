"""
Exam composition service
Selects questions, expands comprehension passages and draws per-learner shuffles
"""
import logging
import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from exam_engine.config import settings
from exam_engine.database import utcnow
from exam_engine.exceptions import (
    NoQuestionsAvailable,
    QuestionNotFound,
    InvalidSelection,
)
from exam_engine.models import Question, ExamInstance, Attempt
from exam_engine.models.attempt import STATUS_IN_PROGRESS
from exam_engine.schemas.exam import (
    AssignRequest,
    Degradation,
    ExamInstanceData,
    SequenceToken,
)
from exam_engine.services.shuffle_service import shuffle_service
from exam_engine.services.question_store import question_store
from exam_engine.services.exam_store import exam_store
from exam_engine.services.attempt_store import attempt_store

logger = logging.getLogger(__name__)


@dataclass
class ComposedExam:
    """A freshly composed exam plus the questions it was built from"""
    instance: ExamInstanceData
    questions: Dict[str, Question]
    warnings: List[Degradation] = field(default_factory=list)


class ExamComposer:
    """
    Builds exam instances

    Sequence layout: a comprehension parent becomes a parent marker followed
    immediately by its children in stored order; standalone questions become
    a single question token. Each question token gets its own choice shuffle,
    parent markers get an empty mapping.
    """

    def clamp_count(self, count: Optional[int]) -> int:
        if count is None:
            count = settings.DEFAULT_SAMPLE_COUNT
        return max(settings.MIN_SAMPLE_COUNT, min(settings.MAX_SAMPLE_COUNT, int(count)))

    def _resolve_children(self, db: Session, drawn: List[Question]) -> Dict[str, Question]:
        child_ids = []
        for question in drawn:
            if question.is_comprehension:
                child_ids.extend(str(cid) for cid in (question.child_ids or []))
        return question_store.map_by_ids(db, child_ids)

    def build_sequence(
        self,
        drawn: List[Question],
        children: Dict[str, Question],
        shuffle: bool = True,
        rng: Optional[random.Random] = None
    ) -> Tuple[List[SequenceToken], List[List[int]], List[Degradation]]:
        """
        Expand drawn questions into (sequence, choice_mapping, warnings)

        Each question id appears at most once; a standalone that is also a
        child of a drawn passage is emitted only under that passage.
        """
        sequence: List[SequenceToken] = []
        mapping: List[List[int]] = []
        warnings: List[Degradation] = []
        seen = set()

        claimed = set()
        for question in drawn:
            if question.is_comprehension:
                claimed.update(str(cid) for cid in (question.child_ids or []))

        def draw(n: int) -> List[int]:
            if not shuffle:
                return list(range(n))
            return shuffle_service.shuffle(n, rng)

        for question in drawn:
            if question.id in seen:
                continue

            if not question.is_comprehension:
                if question.id in claimed:
                    continue
                sequence.append(SequenceToken(kind="question", id=question.id))
                mapping.append(draw(len(question.choice_texts())))
                seen.add(question.id)
                continue

            child_tokens = []
            child_mappings = []
            for cid in (str(c) for c in (question.child_ids or [])):
                if cid in seen:
                    continue
                child = children.get(cid)
                if child is None or child.is_comprehension:
                    logger.warning(f"Passage {question.id} references unresolvable child {cid}, skipping")
                    warnings.append(Degradation(
                        code="unresolvable_question",
                        question_id=cid,
                        detail=f"child of passage {question.id} not found at composition time",
                    ))
                    continue
                child_tokens.append(SequenceToken(kind="question", id=cid, parent_id=question.id))
                child_mappings.append(draw(len(child.choice_texts())))
                seen.add(cid)

            if not child_tokens:
                logger.warning(f"Passage {question.id} has no resolvable children, skipping")
                continue

            sequence.append(SequenceToken(kind="parent", id=question.id))
            mapping.append([])
            sequence.extend(child_tokens)
            mapping.extend(child_mappings)
            seen.add(question.id)

        return sequence, mapping, warnings

    def _persist(
        self,
        db: Session,
        sequence: List[SequenceToken],
        mapping: List[List[int]],
        organization_id: Optional[str],
        module: Optional[str],
        user_id: Optional[str],
        expires_at: Optional[datetime],
        now: datetime,
        title: Optional[str] = None,
        created_by_ip: Optional[str] = None
    ) -> ExamInstanceData:
        instance = ExamInstance(
            exam_id=str(uuid.uuid4()),
            title=title,
            organization_id=organization_id,
            module=module,
            assigned_user_id=user_id,
            sequence=[token.model_dump() for token in sequence],
            choice_mapping=mapping,
            created_by_ip=created_by_ip,
            created_at=now,
            expires_at=expires_at,
        )
        exam_store.add(db, instance)

        question_ids = [token.id for token in sequence if not token.is_parent]
        if user_id:
            attempt_store.create_or_update(db, Attempt(
                exam_id=instance.exam_id,
                user_id=user_id,
                organization_id=organization_id,
                module=module,
                question_ids=question_ids,
                answers=[],
                max_score=len(question_ids),
                status=STATUS_IN_PROGRESS,
                started_at=now,
                created_at=now,
            ))

        return ExamInstanceData.model_validate(instance)

    def sample(
        self,
        db: Session,
        count: Optional[int],
        module: Optional[str] = None,
        organization_id: Optional[str] = None,
        user_id: Optional[str] = None,
        persist: Optional[bool] = None,
        created_by_ip: Optional[str] = None,
        rng: Optional[random.Random] = None,
        now: Optional[datetime] = None
    ) -> ComposedExam:
        """
        Random sampling mode

        Draws up to count questions (clamped to the configured bounds) from
        the organization's questions plus global ones. Unpersisted exams keep
        canonical choice order since no mapping could be replayed later.

        Raises:
            NoQuestionsAvailable: the matching pool is empty
        """
        count = self.clamp_count(count)
        persist = settings.PERSIST_SAMPLED_EXAMS if persist is None else persist
        now = now or utcnow()

        drawn = question_store.sample(db, count, module=module, organization_id=organization_id)
        if not drawn:
            raise NoQuestionsAvailable(
                f"No questions available for module={module or '*'} org={organization_id or 'global'}"
            )

        children = self._resolve_children(db, drawn)
        sequence, mapping, warnings = self.build_sequence(drawn, children, shuffle=persist, rng=rng)
        if not sequence:
            raise NoQuestionsAvailable("Sampled questions could not be expanded into an exam")

        questions = {q.id: q for q in drawn}
        questions.update(children)

        if not persist:
            instance = ExamInstanceData(
                exam_id=None,
                organization_id=organization_id,
                module=module,
                sequence=sequence,
                choice_mapping=mapping,
                created_at=now,
            )
            return ComposedExam(instance=instance, questions=questions, warnings=warnings)

        expires_at = None
        if settings.SAMPLED_EXAM_TTL_MINUTES:
            expires_at = now + timedelta(minutes=settings.SAMPLED_EXAM_TTL_MINUTES)

        try:
            instance = self._persist(
                db, sequence, mapping,
                organization_id=organization_id,
                module=module,
                user_id=user_id,
                expires_at=expires_at,
                now=now,
                created_by_ip=created_by_ip,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        exam_store.cache(instance)
        logger.info(f"Sampled exam {instance.exam_id}: {len(sequence)} tokens from {len(drawn)} drawn")
        return ComposedExam(instance=instance, questions=questions, warnings=warnings)

    def _assignment_pool(self, db: Session, request: AssignRequest) -> List[Question]:
        if request.passage_id:
            parent = question_store.find_by_id(db, request.passage_id)
            if not parent:
                raise QuestionNotFound(f"Passage {request.passage_id} not found")
            if not parent.is_comprehension:
                raise InvalidSelection(f"Question {request.passage_id} is not a comprehension passage")
            if parent.organization_id and parent.organization_id != request.organization_id:
                raise InvalidSelection("Passage does not belong to this organization")
            if not parent.child_ids:
                raise InvalidSelection("Passage has no child questions")
            return [parent]

        if request.question_ids:
            by_id = question_store.map_by_ids(db, request.question_ids)
            pool = [by_id[qid] for qid in request.question_ids if qid in by_id]
            missing = [qid for qid in request.question_ids if qid not in by_id]
            if missing:
                logger.warning(f"Assignment skipped unknown question ids: {missing}")

            foreign = [q.id for q in pool if q.organization_id and q.organization_id != request.organization_id]
            if foreign:
                logger.warning(
                    f"Assignment skipped question ids outside org {request.organization_id}: {foreign}"
                )
                pool = [q for q in pool if q.id not in foreign]
            if not pool:
                raise NoQuestionsAvailable("None of the requested questions are available to this organization")
            return pool

        available = question_store.count_matching(db, request.module, request.organization_id)
        logger.info(
            f"Available questions: {available} for module={request.module} org={request.organization_id}"
        )
        if not available:
            raise NoQuestionsAvailable(f"No questions available for module {request.module}")

        if request.count:
            return question_store.sample(
                db, min(self.clamp_count(request.count), available),
                module=request.module, organization_id=request.organization_id,
            )
        return question_store.find_matching(db, request.module, request.organization_id)

    def assign(
        self,
        db: Session,
        request: AssignRequest,
        created_by_ip: Optional[str] = None,
        rng: Optional[random.Random] = None,
        now: Optional[datetime] = None
    ) -> List[ComposedExam]:
        """
        Explicit assignment mode

        The question selection is made once and shared; every learner gets an
        own instance with independently drawn shuffles and an in-progress
        attempt.
        """
        now = now or utcnow()
        drawn = self._assignment_pool(db, request)
        children = self._resolve_children(db, drawn)

        minutes = request.expires_minutes
        if minutes is None:
            minutes = settings.DEFAULT_ASSIGNMENT_TTL_MINUTES
        expires_at = now + timedelta(minutes=minutes) if minutes else None

        module = (request.module or "general").strip().lower()
        questions = {q.id: q for q in drawn}
        questions.update(children)

        composed = []
        try:
            for user_id in request.user_ids:
                sequence, mapping, warnings = self.build_sequence(drawn, children, rng=rng)
                if not sequence:
                    raise NoQuestionsAvailable("Selected questions could not be expanded into an exam")
                instance = self._persist(
                    db, sequence, mapping,
                    organization_id=request.organization_id,
                    module=module,
                    user_id=user_id,
                    expires_at=expires_at,
                    now=now,
                    title=request.title,
                    created_by_ip=created_by_ip,
                )
                composed.append(ComposedExam(instance=instance, questions=questions, warnings=warnings))
            db.commit()
        except Exception:
            db.rollback()
            raise

        for item in composed:
            exam_store.cache(item.instance)
        logger.info(f"Assigned {len(composed)} exam instance(s) for module={module} org={request.organization_id}")
        return composed


# Global instance
exam_composer = ExamComposer()
