"""
Attempt model - stores exam submissions and grading
"""
from sqlalchemy import Column, String, Integer, Boolean, DateTime
from exam_engine.database import Base, JSONType, utcnow
import uuid

STATUS_IN_PROGRESS = "in_progress"
STATUS_FINISHED = "finished"


class Attempt(Base):
    """
    Attempts table - one evolving record per exam-taking session.
    Created in_progress on assignment, finished exactly once on submission.
    """
    __tablename__ = "attempts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    exam_id = Column(String(64), nullable=True, index=True)
    user_id = Column(String(64), nullable=True, index=True)
    organization_id = Column(String(64), nullable=True, index=True)
    module = Column(String(100), nullable=True)
    question_ids = Column(JSONType, default=list)  # flat concrete ids, no parent markers
    answers = Column(JSONType, default=list)  # per-item grading details
    score = Column(Integer, default=0)
    max_score = Column(Integer, default=0)
    percentage = Column(Integer, default=0)
    passed = Column(Boolean, default=False)
    status = Column(String(20), default=STATUS_IN_PROGRESS)
    started_at = Column(DateTime, default=utcnow)
    finished_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Attempt(exam_id={self.exam_id}, user_id={self.user_id}, score={self.score}/{self.max_score})>"
