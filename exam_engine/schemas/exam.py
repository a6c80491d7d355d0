"""
Pydantic schemas for exam composition, rendering and submission
"""
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from typing import List, Optional, Literal, Union
from datetime import datetime


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys on the wire"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


# ---------------------------------------------------------------------------
# Persisted instance structure
# ---------------------------------------------------------------------------

class SequenceToken(BaseModel):
    """One entry of an exam sequence: a parent marker or a concrete question"""
    kind: Literal["parent", "question"]
    id: str
    parent_id: Optional[str] = None  # set on children of a comprehension parent

    @property
    def is_parent(self) -> bool:
        return self.kind == "parent"


class ExamInstanceData(BaseModel):
    """Detached snapshot of an ExamInstance row (safe to cache)"""
    exam_id: Optional[str]  # None for sampled exams that were never persisted
    title: Optional[str] = None
    organization_id: Optional[str] = None
    module: Optional[str] = None
    assigned_user_id: Optional[str] = None
    sequence: List[SequenceToken]
    choice_mapping: List[List[int]]
    status: Optional[str] = None
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    def question_ids(self) -> List[str]:
        """Flat concrete question ids, parent markers removed"""
        return [token.id for token in self.sequence if not token.is_parent]


# ---------------------------------------------------------------------------
# Learner-facing view
# ---------------------------------------------------------------------------

class ChoiceView(CamelModel):
    """A single answer choice as displayed"""
    text: str


class QuestionBlock(CamelModel):
    """Learner-facing question with choices in display order"""
    id: str
    text: str
    choices: List[ChoiceView]
    tags: List[str] = []
    difficulty: str = "medium"


class ComprehensionBlock(CamelModel):
    """Learner-facing reading passage with its ordered child questions"""
    id: str
    type: Literal["comprehension"] = "comprehension"
    title: Optional[str] = None
    passage: str
    children: List[QuestionBlock]
    tags: List[str] = []
    difficulty: str = "medium"


class Degradation(CamelModel):
    """A recovered problem that did not abort the request"""
    code: Literal["unresolvable_question", "malformed_mapping"]
    question_id: str
    detail: str


class ExamView(CamelModel):
    """Response containing a rendered exam"""
    exam_id: Optional[str]
    series: List[Union[ComprehensionBlock, QuestionBlock]]
    expired: bool = False
    submittable: bool = True
    expires_at: Optional[datetime] = None
    warnings: List[Degradation] = []


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------

class AnswerIn(CamelModel):
    """A learner's click: the choice index as shown on screen"""
    question_id: str
    choice_index: Optional[int] = None


class SubmissionRequest(CamelModel):
    """Schema for exam submission"""
    exam_id: Optional[str] = None
    user_id: Optional[str] = None
    module: Optional[str] = None
    org: Optional[str] = None
    answers: List[AnswerIn] = Field(..., min_length=1, description="Submitted answers")


class AnswerDetail(CamelModel):
    """Grading details for a single question"""
    question_id: str
    shown_index: Optional[int] = None
    canonical_index: Optional[int] = None
    correct_index: Optional[int] = None
    correct: bool = False
    selected_text: str = ""
    status: Literal["graded", "unanswered", "unresolvable", "outside_exam"] = "graded"


class ScoreReport(CamelModel):
    """Response after exam grading"""
    exam_id: Optional[str]
    total: int
    score: int
    percentage: int
    pass_threshold: int
    passed: bool
    details: List[AnswerDetail]
    warnings: List[Degradation] = []


# ---------------------------------------------------------------------------
# Assignment
# ---------------------------------------------------------------------------

class AssignRequest(CamelModel):
    """Request schema for assigning an exam to learners"""
    organization_id: Optional[str] = None
    module: str = Field("general", max_length=100)
    user_ids: List[str] = Field(..., min_length=1, description="Target learners")
    count: Optional[int] = Field(None, ge=1, description="Sample this many questions from the scope")
    passage_id: Optional[str] = Field(None, description="Assign one comprehension passage with its children")
    question_ids: Optional[List[str]] = Field(None, description="Assign an explicit list of questions")
    expires_minutes: Optional[int] = Field(None, ge=0, description="0 = never expires")
    title: Optional[str] = Field(None, max_length=255)


class AssignedExam(CamelModel):
    """One learner's newly created exam instance"""
    user_id: str
    exam_id: str


class AssignResponse(CamelModel):
    """Response after assignment"""
    assigned: List[AssignedExam]
    question_count: int
    passage_assigned: Optional[str] = None
