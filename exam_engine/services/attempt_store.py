"""
Attempt store - learner attempts and their grading details
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from exam_engine.models import Attempt

logger = logging.getLogger(__name__)


class AttemptStore:
    """Persistence for Attempt rows"""

    def create_or_update(self, db: Session, attempt: Attempt) -> Attempt:
        """Insert a new attempt or flush changes made to a loaded one"""
        db.add(attempt)
        db.flush()
        return attempt

    def find_latest_by_exam(self, db: Session, exam_id: str) -> Optional[Attempt]:
        if not exam_id:
            return None
        return (
            db.query(Attempt)
            .filter(Attempt.exam_id == exam_id)
            .order_by(Attempt.created_at.desc())
            .first()
        )

    def find_latest_by_user_org_module(
        self,
        db: Session,
        user_id: Optional[str],
        organization_id: Optional[str],
        module: Optional[str]
    ) -> Optional[Attempt]:
        """
        Fallback lookup for submissions that carry no exam id

        Matches the exact (user, organization, module) key of exam-less
        attempts, a missing part only matches NULL. Anonymous submissions
        never match since their attempts cannot be told apart.
        """
        if not user_id:
            return None

        def exact(column, value):
            return column == value if value else column.is_(None)

        return (
            db.query(Attempt)
            .filter(
                Attempt.exam_id.is_(None),
                Attempt.user_id == user_id,
                exact(Attempt.organization_id, organization_id),
                exact(Attempt.module, module),
            )
            .order_by(Attempt.created_at.desc())
            .first()
        )


# Global instance
attempt_store = AttemptStore()
