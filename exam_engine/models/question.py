"""
Question model - standalone questions and comprehension passages
"""
from sqlalchemy import Column, String, Integer, Text, DateTime
from exam_engine.database import Base, JSONType, utcnow
import uuid

STANDALONE = "standalone"
COMPREHENSION = "comprehension"


class Question(Base):
    """
    Questions table - a standalone multiple-choice question, or a comprehension
    parent whose gradable content lives in an ordered list of child questions
    """
    __tablename__ = "questions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    variant = Column(String(20), nullable=False, default=STANDALONE, index=True)
    text = Column(Text, nullable=False)  # prompt, or passage title for parents
    choices = Column(JSONType, default=list)  # ["choice A", "choice B"] canonical order
    correct_index = Column(Integer, nullable=True)
    passage = Column(Text, nullable=True)
    child_ids = Column(JSONType, default=list)  # ordered child question ids
    module = Column(String(100), default="general", index=True)
    organization_id = Column(String(64), nullable=True, index=True)  # null = global
    tags = Column(JSONType, default=list)
    difficulty = Column(String(20), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    @property
    def is_comprehension(self) -> bool:
        return self.variant == COMPREHENSION

    def choice_texts(self) -> list:
        """Canonical choices as plain strings ({"text": ...} entries are unwrapped)"""
        texts = []
        for choice in self.choices or []:
            if isinstance(choice, dict):
                texts.append(str(choice.get("text") or ""))
            else:
                texts.append(str(choice))
        return texts

    def __repr__(self):
        return f"<Question(id={self.id}, variant={self.variant}, module={self.module})>"
