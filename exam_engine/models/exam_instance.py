"""
ExamInstance model - one persisted, per-learner rendition of an exam
"""
from sqlalchemy import Column, String, DateTime, Index
from exam_engine.database import Base, JSONType, utcnow
import uuid

STATUS_PENDING = "pending"
STATUS_FINISHED = "finished"


class ExamInstance(Base):
    """
    Exam instances table - the exact question sequence and choice shuffles one
    learner session sees. Immutable after creation except status/finished_at.

    sequence: [{"kind": "parent", "id": ...}, {"kind": "question", "id": ..., "parent_id": ...}]
    choice_mapping: index-aligned with sequence, mapping[display] = canonical
    """
    __tablename__ = "exam_instances"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    exam_id = Column(String(64), unique=True, nullable=False, index=True)
    title = Column(String(255), nullable=True)
    organization_id = Column(String(64), nullable=True, index=True)
    module = Column(String(100), default="general", index=True)
    assigned_user_id = Column(String(64), nullable=True, index=True)
    sequence = Column(JSONType, nullable=False, default=list)
    choice_mapping = Column(JSONType, nullable=False, default=list)
    status = Column(String(20), default=STATUS_PENDING, index=True)
    created_by_ip = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    expires_at = Column(DateTime, nullable=True)
    finished_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_exam_instances_org_user_exam", "organization_id", "assigned_user_id", "exam_id"),
    )

    def __repr__(self):
        return f"<ExamInstance(exam_id={self.exam_id}, tokens={len(self.sequence or [])}, status={self.status})>"
