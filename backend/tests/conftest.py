# backend/tests/conftest.py
from datetime import datetime

import pytest
from unittest.mock import MagicMock
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from learnflow.main import app
from learnflow.api.deps import get_fact_dispatcher
from learnflow.config import Settings
from learnflow.database import get_db
from learnflow.models import Base, ComponentType
from learnflow.services.assignment_coordinator import AssignmentCoordinator
from learnflow.services.fact_dispatcher import FactDispatcher
from learnflow.services.flow_editor import FlowEditor

# Monday
ASSIGNED_AT = datetime(2024, 1, 1, 9, 30)


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        default_days_per_step=7,
        working_days_of_week=[0, 1, 2, 3, 4],
        holidays=[],
        deadline_warning_days=3,
    )


@pytest.fixture
def mock_dispatcher():
    """Fact dispatcher that records instead of publishing to Redis."""
    return MagicMock(spec=FactDispatcher)


@pytest.fixture
def coordinator(db_session, mock_dispatcher, settings):
    return AssignmentCoordinator(
        db_session,
        dispatcher=mock_dispatcher,
        settings=settings,
        clock=lambda: ASSIGNED_AT,
    )


@pytest.fixture
def build_flow(db_session):
    """Build a flow of article components; published unless told otherwise."""
    def _build(
        steps: int = 2,
        components_per_step: int = 2,
        publish: bool = True,
        title: str = "Onboarding",
        **flow_kwargs,
    ):
        editor = FlowEditor(db_session)
        flow = editor.create_flow(title, **flow_kwargs)
        for s in range(steps):
            step = editor.add_step(flow.id, f"Step {s + 1}")
            for c in range(components_per_step):
                editor.add_component(
                    step.id,
                    ComponentType.ARTICLE,
                    f"Article {s + 1}.{c + 1}",
                    payload={"body": "Read me", "reading_time_minutes": 3},
                )
        if publish:
            editor.publish_flow(flow.id)
        return editor.get_flow(flow.id)

    return _build


@pytest.fixture
def client(db_session):
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_fact_dispatcher] = lambda: None

    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
