"""
Exam delivery, submission and assignment API endpoints
"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from typing import Optional
import logging

from exam_engine.database import get_db
from exam_engine.exceptions import ExamNotFound
from exam_engine.schemas.attempt import AttemptResponse
from exam_engine.schemas.exam import (
    AssignRequest,
    AssignResponse,
    AssignedExam,
    ExamView,
    ScoreReport,
    SubmissionRequest,
)
from exam_engine.services.attempt_store import attempt_store
from exam_engine.services.composer_service import exam_composer
from exam_engine.services.renderer_service import exam_renderer
from exam_engine.services.scoring_service import submission_scorer


router = APIRouter(prefix="/api/exam", tags=["exam"])
logger = logging.getLogger(__name__)


@router.get("", response_model=ExamView)
async def get_exam(
    request: Request,
    exam_id: Optional[str] = Query(None, alias="examId"),
    count: Optional[int] = Query(None),
    module: Optional[str] = Query(None),
    org: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None, alias="userId"),
    db: Session = Depends(get_db),
):
    """
    Serve an exam to a learner

    - With examId: re-render the persisted instance (same shuffle every time)
    - Without: sample count questions (clamped to 1..50) for module/org and
      compose a new instance
    """

    if exam_id:
        logger.info(f"Rendering exam {exam_id}")
        return exam_renderer.render(db, exam_id.strip())

    composed = exam_composer.sample(
        db,
        count,
        module=(module or "").strip() or None,
        organization_id=(org or "").strip() or None,
        user_id=user_id,
        created_by_ip=request.client.host if request.client else None,
    )
    view = exam_renderer.render_snapshot(composed.instance, composed.questions)
    view.warnings = composed.warnings + view.warnings
    return view


@router.post("/submit", response_model=ScoreReport)
async def submit_exam(submission: SubmissionRequest, db: Session = Depends(get_db)):
    """
    Submit and grade an exam

    Shown indices are mapped back through the stored shuffle before being
    compared to the correct answer. Expired exams are rejected with 410 and
    already finished ones with 409.
    """
    logger.info(f"Grading submission for exam {submission.exam_id} ({len(submission.answers)} answers)")
    return submission_scorer.submit(db, submission)


@router.post("/assign", response_model=AssignResponse, status_code=201)
async def assign_exam(
    assignment: AssignRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Assign an exam to learners

    Pool is a comprehension passage (passageId), an explicit list of
    questions (questionIds) or the module/organization scope, optionally
    sampled down to count. Each learner gets an own instance and shuffle.
    """
    composed = exam_composer.assign(
        db,
        assignment,
        created_by_ip=request.client.host if request.client else None,
    )

    question_count = len(composed[0].instance.question_ids()) if composed else 0
    return AssignResponse(
        assigned=[
            AssignedExam(user_id=item.instance.assigned_user_id, exam_id=item.instance.exam_id)
            for item in composed
        ],
        question_count=question_count,
        passage_assigned=assignment.passage_id,
    )


@router.get("/{exam_id}/attempt", response_model=AttemptResponse)
async def get_attempt(exam_id: str, db: Session = Depends(get_db)):
    """Latest attempt for an exam with per-item grading details (admin review)"""
    attempt = attempt_store.find_latest_by_exam(db, exam_id)
    if not attempt:
        raise ExamNotFound(f"No attempt recorded for exam {exam_id}")
    return AttemptResponse.model_validate(attempt)
