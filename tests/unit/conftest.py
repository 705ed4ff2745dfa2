"""Shared fixtures for unit tests.

Provides sample catalog entries, a valid start command and an in-memory
session factory.
"""

from typing import Any

import pytest
from fakes import FakeSessionFactory

from src.palooza.models import ConversationRequest, ConversationStyle, Persona


@pytest.fixture
def ada() -> Persona:
    return Persona(
        id="ada",
        name="Ada",
        description="a witty scientist",
        voice="female",
        speech="Quick and precise",
        personality_traits=["curious", "sharp"],
    )


@pytest.fixture
def max_persona() -> Persona:
    return Persona(id="max", name="Max", description="a curious student", voice="male")


@pytest.fixture
def debate() -> ConversationStyle:
    return ConversationStyle(id="debate", name="Debate", description="a lively debate")


@pytest.fixture
def conversation_request(
    ada: Persona, max_persona: Persona, debate: ConversationStyle
) -> ConversationRequest:
    return ConversationRequest(personas=(ada, max_persona), style=debate, topic="space travel")


@pytest.fixture
def session_factory() -> FakeSessionFactory:
    return FakeSessionFactory()


@pytest.fixture
def start_payload() -> dict[str, Any]:
    """Valid client start command."""
    return {
        "type": "start",
        "personas": [
            {"id": "ada", "name": "Ada", "description": "a witty scientist"},
            {"id": "max", "name": "Max", "description": "a curious student"},
        ],
        "style": {"id": "debate", "name": "Debate", "description": "a lively debate"},
        "topic": "space travel",
    }
