"""
Test configuration and fixtures for PolicyBot backend tests.
"""

import pytest
from typing import Generator, List
from fastapi.testclient import TestClient

from main import app
from policybot.services.chat import ChatService, get_chat_service
from policybot.services.llm import OracleUnavailable

from tests.stubs import StubOracle


@pytest.fixture
def stub_oracle() -> StubOracle:
    return StubOracle()


@pytest.fixture
def failing_oracle() -> StubOracle:
    return StubOracle(fail=OracleUnavailable("provider down"))


@pytest.fixture
def chat_service(stub_oracle: StubOracle) -> ChatService:
    return ChatService(stub_oracle)


@pytest.fixture(scope="function")
def client(chat_service: ChatService) -> Generator[TestClient, None, None]:
    """Create a test client with the chat service overridden."""
    app.dependency_overrides[get_chat_service] = lambda: chat_service
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


class RecordingSleep:
    """Stands in for time.sleep and records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
