"""
Pydantic schemas for attempt review
"""
from typing import List, Optional
from datetime import datetime

from exam_engine.schemas.exam import CamelModel, AnswerDetail


class AttemptResponse(CamelModel):
    """Stored attempt with every per-item detail, for admin review"""
    id: str
    exam_id: Optional[str] = None
    user_id: Optional[str] = None
    organization_id: Optional[str] = None
    module: Optional[str] = None
    question_ids: List[str] = []
    answers: List[AnswerDetail] = []
    score: int = 0
    max_score: int = 0
    percentage: int = 0
    passed: bool = False
    status: str
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    class Config:
        from_attributes = True
