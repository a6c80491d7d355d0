from datetime import timedelta

import pytest

from exam_engine.database import utcnow
from exam_engine.exceptions import ExamNotFound
from exam_engine.schemas.exam import AssignRequest, ComprehensionBlock, QuestionBlock
from exam_engine.services.composer_service import exam_composer
from exam_engine.services.renderer_service import exam_renderer


def _assign(db, question_ids=None, passage_id=None, user="alice"):
    composed = exam_composer.assign(db, AssignRequest(
        user_ids=[user], question_ids=question_ids, passage_id=passage_id,
    ))
    return composed[0].instance


def test_choices_rendered_in_display_order(db, make_question):
    question = make_question()
    instance = _assign(db, question_ids=[question.id])

    view = exam_renderer.render(db, instance.exam_id)

    block = view.series[0]
    assert isinstance(block, QuestionBlock)
    mapping = instance.choice_mapping[0]
    assert [c.text for c in block.choices] == [question.choices[i] for i in mapping]


def test_view_never_reveals_correct_answer(db, make_question, make_passage):
    question = make_question()
    parent, _ = make_passage()
    instance = _assign(db, question_ids=[question.id, parent.id])

    payload = exam_renderer.render(db, instance.exam_id).model_dump_json(by_alias=True)

    assert "correct" not in payload.lower()
    assert "answerIndex" not in payload


def test_rerender_is_identical(db, make_question, make_passage):
    question = make_question()
    parent, _ = make_passage(n_children=3)
    instance = _assign(db, question_ids=[question.id, parent.id])

    first = exam_renderer.render(db, instance.exam_id).model_dump_json(by_alias=True)
    second = exam_renderer.render(db, instance.exam_id).model_dump_json(by_alias=True)

    assert first == second


def test_children_keep_stored_order(db, make_passage):
    parent, children = make_passage(n_children=3)
    instance = _assign(db, passage_id=parent.id)

    for _ in range(3):
        view = exam_renderer.render(db, instance.exam_id)
        assert len(view.series) == 1
        block = view.series[0]
        assert isinstance(block, ComprehensionBlock)
        assert block.passage == parent.passage
        assert [c.id for c in block.children] == [c.id for c in children]


def test_deleted_child_is_omitted(db, make_passage):
    parent, children = make_passage(n_children=3)
    child_ids = [c.id for c in children]
    instance = _assign(db, passage_id=parent.id)

    db.delete(children[1])
    db.commit()

    view = exam_renderer.render(db, instance.exam_id)

    block = view.series[0]
    assert [c.id for c in block.children] == [child_ids[0], child_ids[2]]
    assert [(w.code, w.question_id) for w in view.warnings] == [("unresolvable_question", child_ids[1])]


def test_children_promoted_when_passage_deleted(db, make_passage):
    parent, children = make_passage(n_children=2)
    child_ids = [c.id for c in children]
    instance = _assign(db, passage_id=parent.id)

    db.delete(parent)
    db.commit()

    view = exam_renderer.render(db, instance.exam_id)

    assert [b.id for b in view.series] == child_ids
    assert all(isinstance(b, QuestionBlock) for b in view.series)


def test_malformed_mapping_falls_back_to_canonical(db, make_question, load_instance):
    question = make_question()
    instance = _assign(db, question_ids=[question.id])

    row = load_instance(instance.exam_id)
    row.choice_mapping = [[1, 0]]
    db.commit()

    view = exam_renderer.render(db, instance.exam_id)

    assert [c.text for c in view.series[0].choices] == question.choices
    assert view.warnings[0].code == "malformed_mapping"


def test_unknown_exam_raises(db):
    with pytest.raises(ExamNotFound):
        exam_renderer.render(db, "does-not-exist")


def test_expired_exam_still_renders_but_is_not_submittable(db, make_question, load_instance):
    question = make_question()
    instance = _assign(db, question_ids=[question.id])

    row = load_instance(instance.exam_id)
    row.expires_at = utcnow() - timedelta(minutes=1)
    db.commit()

    view = exam_renderer.render(db, instance.exam_id)

    assert view.expired is True
    assert view.submittable is False
    assert len(view.series) == 1
