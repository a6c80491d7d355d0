import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CACHE_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from exam_engine.database import Base, get_db, init_db
from exam_engine.main import app
from exam_engine.models import Question, ExamInstance
from exam_engine.models.question import STANDALONE, COMPREHENSION


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_question(db):
    counter = {"n": 0}

    def _make(correct_index=0, choices=None, module="general", organization_id=None,
              text=None, tags=None, difficulty="easy"):
        counter["n"] += 1
        n = counter["n"]
        question = Question(
            variant=STANDALONE,
            text=text or f"Question {n}",
            choices=choices or [f"q{n}-choice-{i}" for i in range(4)],
            correct_index=correct_index,
            module=module,
            organization_id=organization_id,
            tags=tags or ["sample"],
            difficulty=difficulty,
        )
        db.add(question)
        db.commit()
        return question

    return _make


@pytest.fixture
def make_passage(db, make_question):
    def _make(n_children=2, module="general", organization_id=None, correct=None):
        correct = correct or [i % 4 for i in range(n_children)]
        children = [
            make_question(correct_index=correct[i], module=module, organization_id=organization_id)
            for i in range(n_children)
        ]
        parent = Question(
            variant=COMPREHENSION,
            text="Reading passage",
            passage="The quick brown fox jumps over the lazy dog.",
            child_ids=[child.id for child in children],
            choices=[],
            module=module,
            organization_id=organization_id,
            tags=["reading"],
            difficulty="medium",
        )
        db.add(parent)
        db.commit()
        return parent, children

    return _make


@pytest.fixture
def load_instance(db):
    def _load(exam_id):
        db.expire_all()
        return db.query(ExamInstance).filter(ExamInstance.exam_id == exam_id).one()

    return _load
