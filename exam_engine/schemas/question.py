"""
Pydantic schemas for question import
"""
from pydantic import Field, model_validator
from typing import List, Optional, Literal

from exam_engine.schemas.exam import CamelModel


class ChildQuestionCreate(CamelModel):
    """A child question of a comprehension passage (always standalone)"""
    text: str = Field(..., min_length=1)
    choices: List[str] = Field(..., min_length=1)
    correct_index: int = Field(..., ge=0)
    tags: List[str] = []
    difficulty: Optional[str] = None

    @model_validator(mode="after")
    def check_correct_index(self):
        if self.correct_index >= len(self.choices):
            raise ValueError("correct_index must point into choices")
        return self


class QuestionCreate(CamelModel):
    """Schema for importing a standalone question or a comprehension passage"""
    variant: Literal["standalone", "comprehension"] = "standalone"
    text: str = Field(..., min_length=1, description="Prompt, or passage title")
    choices: Optional[List[str]] = None
    correct_index: Optional[int] = Field(None, ge=0)
    passage: Optional[str] = None
    children: Optional[List[ChildQuestionCreate]] = None
    module: str = Field("general", max_length=100)
    organization_id: Optional[str] = None
    tags: List[str] = []
    difficulty: Optional[str] = None

    @model_validator(mode="after")
    def check_variant_fields(self):
        if self.variant == "standalone":
            if not self.choices:
                raise ValueError("standalone questions need choices")
            if self.correct_index is None or self.correct_index >= len(self.choices):
                raise ValueError("correct_index must point into choices")
        else:
            if not self.passage:
                raise ValueError("comprehension questions need a passage")
            if not self.children:
                raise ValueError("comprehension questions need at least one child")
        return self


class QuestionCreated(CamelModel):
    """Response after question import"""
    id: str
    variant: str
    child_ids: List[str] = []
