"""
Submission scoring service
Replays the stored choice shuffle, grades each item and persists the attempt
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from exam_engine.config import settings
from exam_engine.database import utcnow
from exam_engine.exceptions import (
    ExamEngineError,
    ExamNotFound,
    ExamExpired,
    AlreadySubmitted,
)
from exam_engine.models import Attempt, Question
from exam_engine.models.attempt import STATUS_FINISHED
from exam_engine.schemas.exam import (
    AnswerDetail,
    AnswerIn,
    Degradation,
    ExamInstanceData,
    ScoreReport,
    SubmissionRequest,
)
from exam_engine.services.shuffle_service import shuffle_service
from exam_engine.services.question_store import question_store
from exam_engine.services.exam_store import exam_store
from exam_engine.services.attempt_store import attempt_store

logger = logging.getLogger(__name__)

POLICY_REJECT = "reject"
POLICY_OVERWRITE = "overwrite"
POLICY_COUNT_WRONG = "count_wrong"
POLICY_EXCLUDE = "exclude"


def percentage_of(score: int, total: int) -> int:
    """100 * score / total rounded half up, 0 for an empty exam"""
    if total <= 0:
        return 0
    return (200 * score + total) // (2 * total)


class SubmissionScorer:
    """
    Grades submissions against the exam instance the learner actually saw

    Fallback policy, applied item by item so one bad answer never affects
    the others:
    - exam question the learner did not answer: counted, wrong
    - shown index out of range: unanswered, wrong
    - question without a usable mapping: shown index taken as canonical
    - question deleted from the bank: counted wrong (or excluded when
      UNRESOLVABLE_QUESTION_POLICY=exclude)
    - answer for a question outside the exam: reported, not counted
    - duplicate answers for one question: the last one wins
    """

    def grade(
        self,
        instance: Optional[ExamInstanceData],
        answers: List[AnswerIn],
        questions: Dict[str, Question],
        pass_threshold: Optional[int] = None,
        unresolvable_policy: Optional[str] = None
    ) -> ScoreReport:
        """
        Pure grading step, no persistence

        Args:
            instance: The exam instance, or None for ad-hoc grading where
                every shown index is already canonical
            answers: Submitted answers in any order
            questions: Live questions keyed by id

        Returns:
            ScoreReport (identical for identical inputs)
        """
        pass_threshold = settings.PASS_THRESHOLD if pass_threshold is None else pass_threshold
        unresolvable_policy = unresolvable_policy or settings.UNRESOLVABLE_QUESTION_POLICY

        submitted: Dict[str, AnswerIn] = {}
        for answer in answers:
            submitted[str(answer.question_id)] = answer

        mappings: Dict[str, List[int]] = {}
        if instance is not None:
            for position, token in enumerate(instance.sequence):
                if token.is_parent or token.id in mappings:
                    continue
                if position < len(instance.choice_mapping):
                    mappings[token.id] = instance.choice_mapping[position]
            item_ids = instance.question_ids()
        else:
            item_ids = list(submitted.keys())

        details: List[AnswerDetail] = []
        warnings: List[Degradation] = []
        total = 0
        score = 0

        for question_id in item_ids:
            answer = submitted.get(question_id)
            shown = answer.choice_index if answer else None
            detail = self._grade_item(question_id, shown, mappings.get(question_id), questions, warnings)

            if detail.status == "unresolvable" and unresolvable_policy == POLICY_EXCLUDE:
                details.append(detail)
                continue

            total += 1
            if detail.correct:
                score += 1
            details.append(detail)

        if instance is not None:
            listed = set(item_ids)
            for question_id, answer in submitted.items():
                if question_id in listed:
                    continue
                logger.warning(f"Exam {instance.exam_id}: answer for question {question_id} outside the exam")
                detail = self._grade_item(question_id, answer.choice_index, None, questions, warnings)
                detail.status = "outside_exam"
                details.append(detail)

        percentage = percentage_of(score, total)
        return ScoreReport(
            exam_id=instance.exam_id if instance is not None else None,
            total=total,
            score=score,
            percentage=percentage,
            pass_threshold=pass_threshold,
            passed=percentage >= pass_threshold,
            details=details,
            warnings=warnings,
        )

    def _grade_item(
        self,
        question_id: str,
        shown: Optional[int],
        mapping: Optional[List[int]],
        questions: Dict[str, Question],
        warnings: List[Degradation]
    ) -> AnswerDetail:
        question = questions.get(question_id)

        if question is None or question.is_comprehension:
            logger.warning(f"Question {question_id} cannot be resolved for scoring")
            warnings.append(Degradation(
                code="unresolvable_question",
                question_id=question_id,
                detail="question no longer exists in the question bank",
            ))
            canonical = shuffle_service.to_canonical(mapping, shown) if mapping else None
            return AnswerDetail(
                question_id=question_id,
                shown_index=shown,
                canonical_index=canonical,
                correct_index=None,
                correct=False,
                status="unresolvable",
            )

        choices = question.choice_texts()
        if mapping is None:
            effective = list(range(len(choices)))
        else:
            effective, malformed = shuffle_service.resolve(mapping, len(choices))
            if malformed:
                logger.warning(
                    f"Stored mapping {mapping} does not fit {len(choices)} choices of question "
                    f"{question_id}, treating shown index as canonical"
                )
                warnings.append(Degradation(
                    code="malformed_mapping",
                    question_id=question_id,
                    detail=f"stored mapping does not fit {len(choices)} choices, canonical order used",
                ))

        canonical = shuffle_service.to_canonical(effective, shown)
        correct_index = question.correct_index
        correct = correct_index is not None and canonical is not None and correct_index == canonical

        return AnswerDetail(
            question_id=question_id,
            shown_index=shown,
            canonical_index=canonical,
            correct_index=correct_index,
            correct=correct,
            selected_text=choices[canonical] if canonical is not None else "",
            status="graded" if canonical is not None else "unanswered",
        )

    def submit(
        self,
        db: Session,
        submission: SubmissionRequest,
        now: Optional[datetime] = None
    ) -> ScoreReport:
        """
        Grade a submission and persist the attempt

        Raises:
            ExamNotFound: unknown exam id
            ExamExpired: expires_at has passed
            AlreadySubmitted: instance already finished (reject policy)
        """
        now = now or utcnow()
        if not submission.exam_id:
            return self._submit_ad_hoc(db, submission, now)

        exam_id = submission.exam_id
        policy = settings.RESUBMISSION_POLICY

        instance = exam_store.get_snapshot(db, exam_id, use_cache=False)
        if instance is None:
            raise ExamNotFound(f"Exam {exam_id} not found")
        if instance.expires_at and instance.expires_at <= now:
            raise ExamExpired(f"Exam {exam_id} expired at {instance.expires_at.isoformat()}")
        if instance.finished_at is not None and policy != POLICY_OVERWRITE:
            raise AlreadySubmitted(f"Exam {exam_id} was already submitted")

        lookup_ids = instance.question_ids() + [a.question_id for a in submission.answers]
        questions = question_store.map_by_ids(db, lookup_ids)
        report = self.grade(instance, submission.answers, questions)

        try:
            if policy == POLICY_OVERWRITE:
                exam_store.touch_finished(db, exam_id, now)
            elif not exam_store.mark_finished(db, exam_id, now):
                raise AlreadySubmitted(f"Exam {exam_id} was already submitted")

            attempt = attempt_store.find_latest_by_exam(db, exam_id)
            if attempt is None:
                attempt = Attempt(exam_id=exam_id, created_at=now, started_at=instance.created_at or now)

            attempt.user_id = submission.user_id or instance.assigned_user_id or attempt.user_id
            attempt.organization_id = instance.organization_id
            attempt.module = instance.module
            attempt.question_ids = instance.question_ids()
            self._finish(attempt, report, now)
            attempt_store.create_or_update(db, attempt)
            db.commit()
            exam_store.invalidate(exam_id)
        except ExamEngineError:
            db.rollback()
            raise
        except Exception as e:
            logger.error(f"Failed to persist attempt for exam {exam_id}: {str(e)}")
            db.rollback()
            raise

        logger.info(
            f"Exam {exam_id} graded: {report.score}/{report.total} "
            f"({report.percentage}%, passed={report.passed}, warnings={len(report.warnings)})"
        )
        return report

    def _submit_ad_hoc(self, db: Session, submission: SubmissionRequest, now: datetime) -> ScoreReport:
        """Exam-less submission: shown indices are canonical, attempt keyed by user/org/module"""
        questions = question_store.map_by_ids(db, [a.question_id for a in submission.answers])
        report = self.grade(None, submission.answers, questions)

        try:
            attempt = attempt_store.find_latest_by_user_org_module(
                db, submission.user_id, submission.org, submission.module
            )
            if attempt is None:
                attempt = Attempt(created_at=now, started_at=now)

            attempt.user_id = submission.user_id or None
            attempt.organization_id = submission.org or None
            attempt.module = submission.module or None
            attempt.question_ids = [d.question_id for d in report.details]
            self._finish(attempt, report, now)
            attempt_store.create_or_update(db, attempt)
            db.commit()
        except Exception as e:
            logger.error(f"Failed to persist ad-hoc attempt: {str(e)}")
            db.rollback()
            raise

        logger.info(f"Ad-hoc submission graded: {report.score}/{report.total} ({report.percentage}%)")
        return report

    def _finish(self, attempt: Attempt, report: ScoreReport, now: datetime) -> None:
        attempt.answers = [detail.model_dump() for detail in report.details]
        attempt.score = report.score
        attempt.max_score = report.total
        attempt.percentage = report.percentage
        attempt.passed = report.passed
        attempt.status = STATUS_FINISHED
        attempt.finished_at = now
        attempt.updated_at = now


# Global instance
submission_scorer = SubmissionScorer()
