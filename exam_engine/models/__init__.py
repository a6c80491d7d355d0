"""
Database models package
"""
from exam_engine.models.question import Question
from exam_engine.models.exam_instance import ExamInstance
from exam_engine.models.attempt import Attempt

__all__ = ["Question", "ExamInstance", "Attempt"]
