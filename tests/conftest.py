import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTO_FINALIZE_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from examcore.core.auth import create_token
from examcore.core.database import get_db
from examcore.main import app
from examcore.models.orm import Base, Question, QuestionOption, Subject, Subtopic, Topic


def add_question(db, qid, subject_id=None, topic_id=None, subtopic_id=None, difficulty=None, labels=("a", "b", "c"), correct=("a",)):
    """Question ``qid`` with options ``{qid}-{label}`` in label order."""
    q = Question(id=qid, subject_id=subject_id, topic_id=topic_id, subtopic_id=subtopic_id, difficulty=difficulty,
                 stem=f"Stem {qid}", explanation=f"Because {qid}")
    q.options = [
        QuestionOption(id=f"{qid}-{label}", text=label.upper(), order=i, is_correct=label in correct)
        for i, label in enumerate(labels)
    ]
    db.add(q)
    return q


@pytest.fixture
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool, future=True)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def catalog(db):
    """math: q1 (algebra/linear, easy), q2 (algebra, hard), q3 (easy); physics: q4 (mechanics, medium); q5 untagged."""
    db.add_all([
        Subject(id="math", name="Mathematics"),
        Subject(id="physics", name="Physics"),
        Topic(id="algebra", subject_id="math", name="Algebra"),
        Topic(id="mechanics", subject_id="physics", name="Mechanics"),
        Subtopic(id="linear", topic_id="algebra", name="Linear Equations"),
    ])
    add_question(db, "q1", "math", "algebra", "linear", difficulty="easy")
    add_question(db, "q2", "math", "algebra", difficulty="hard")
    add_question(db, "q3", "math", difficulty="easy")
    add_question(db, "q4", "physics", "mechanics", difficulty="medium")
    add_question(db, "q5")
    db.commit()
    return db


@pytest.fixture
def client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth():
    def _headers(user_id, *roles):
        return {"Authorization": f"Bearer {create_token(user_id, list(roles) or ['student'])}"}
    return _headers
