import os
import tempfile

# Configure before the app module reads its settings
os.environ.setdefault("LLM_PROVIDER", "mock")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("UPLOAD_DIR", os.path.join(tempfile.gettempdir(), "arbitration-test-uploads"))

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from arbitration import models
from arbitration.judge import VerdictOrchestrator
from arbitration.services import ModelOptions
from arbitration.store import CaseStore

DEFAULT_REPLY = '{"verdict": "Neutral", "confidence": 50, "reasoning": "Both sides are evenly matched."}'


class FakeModel:
    """Stands in for an LLM provider: replays canned replies and records prompts."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []
        self.error = None
        self.before_reply = None

    def __call__(self, messages, options):
        self.calls.append(messages)
        if self.before_reply:
            self.before_reply()
        if self.error is not None:
            raise self.error
        if self.replies:
            return self.replies.pop(0)
        return DEFAULT_REPLY

    @property
    def last_user_message(self):
        return self.calls[-1][-1]["content"]


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def lawyers(engine):
    with Session(engine) as sess:
        a = models.User(name="Asha Rao", email="asha@example.com")
        b = models.User(name="Vikram Sen", email="vikram@example.com", role=models.Role.LAWYER_B)
        outsider = models.User(name="Meera Iyer", email="meera@example.com")
        sess.add(a)
        sess.add(b)
        sess.add(outsider)
        sess.commit()
        return SimpleNamespace(a=a.id, b=b.id, outsider=outsider.id)


@pytest.fixture
def case_id(engine, lawyers):
    with Session(engine) as sess:
        case = models.Case(
            case_number="CASE-2026-00001",
            title="Sharma Steel vs Mehta Builders",
            description="Mehta Builders refused payment for a delivery of steel rods, citing late delivery.",
            category=models.Category.CIVIL,
            jurisdiction="India",
            lawyer_a_id=lawyers.a,
            lawyer_b_id=lawyers.b,
        )
        sess.add(case)
        sess.commit()
        return case.id


@pytest.fixture
def store(engine):
    return CaseStore(engine)


@pytest.fixture
def fake_model():
    return FakeModel()


@pytest.fixture
def judge(store, fake_model):
    return VerdictOrchestrator(store, fake_model, ModelOptions(model="test-model"), max_arguments=5)


@pytest.fixture
def client(engine, fake_model):
    from arbitration.main import app, get_engine, get_generator

    app.dependency_overrides[get_engine] = lambda: engine
    app.dependency_overrides[get_generator] = lambda: fake_model
    yield TestClient(app)
    app.dependency_overrides.clear()
