"""
Exam instance store - persistence with a read-through snapshot cache
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from exam_engine.models import ExamInstance
from exam_engine.models.exam_instance import STATUS_FINISHED
from exam_engine.schemas.exam import ExamInstanceData
from exam_engine.utils.cache import cache_service

logger = logging.getLogger(__name__)


class ExamStore:
    """Persistence for ExamInstance rows"""

    def add(self, db: Session, instance: ExamInstance) -> ExamInstance:
        if len(instance.sequence) != len(instance.choice_mapping):
            raise ValueError("sequence and choice_mapping must be index-aligned")
        db.add(instance)
        db.flush()
        return instance

    def get(self, db: Session, exam_id: str) -> Optional[ExamInstance]:
        if not exam_id:
            return None
        return db.query(ExamInstance).filter(ExamInstance.exam_id == exam_id).first()

    def get_snapshot(self, db: Session, exam_id: str, use_cache: bool = True) -> Optional[ExamInstanceData]:
        """
        Detached instance snapshot, served from cache when available

        Scoring passes use_cache=False so that the finished flag is read from
        the database.
        """
        key = cache_service.instance_key(exam_id)
        if use_cache:
            cached = cache_service.get(key)
            if cached:
                return ExamInstanceData.model_validate(cached)

        instance = self.get(db, exam_id)
        if not instance:
            return None

        snapshot = ExamInstanceData.model_validate(instance)
        self.cache(snapshot)
        return snapshot

    def cache(self, snapshot: ExamInstanceData) -> None:
        cache_service.set(cache_service.instance_key(snapshot.exam_id), snapshot.model_dump(mode="json"))

    def mark_finished(self, db: Session, exam_id: str, now: datetime) -> bool:
        """
        Conditionally finish an instance

        Returns False when another submission already finished it.
        """
        updated = (
            db.query(ExamInstance)
            .filter(ExamInstance.exam_id == exam_id, ExamInstance.finished_at.is_(None))
            .update(
                {ExamInstance.finished_at: now, ExamInstance.status: STATUS_FINISHED},
                synchronize_session=False,
            )
        )
        return updated == 1

    def touch_finished(self, db: Session, exam_id: str, now: datetime) -> None:
        """Unconditionally refresh finished_at (overwrite resubmission policy)"""
        db.query(ExamInstance).filter(ExamInstance.exam_id == exam_id).update(
            {ExamInstance.finished_at: now, ExamInstance.status: STATUS_FINISHED},
            synchronize_session=False,
        )

    def invalidate(self, exam_id: str) -> None:
        """Drop the cached snapshot, called once the finish is committed"""
        cache_service.delete(cache_service.instance_key(exam_id))


# Global instance
exam_store = ExamStore()
