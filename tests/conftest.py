"""
Shared fixtures for notegen tests.

Router tests talk to the FastAPI app through an httpx AsyncClient on an
ASGITransport.  The draft store and generation client dependencies are
overridden with an in-memory store and a scripted fake, so no test touches
the filesystem or the network.
"""
from __future__ import annotations

import json
from typing import AsyncGenerator, List, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from notegen.dependencies.services import get_draft_store, get_generation_client
from notegen.main import app
from notegen.services.draft_store import MemoryDraftStore
from notegen.services.errors import GenerationFailure


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeGenerationClient:
    """Returns scripted responses in order and records every prompt."""

    def __init__(self, responses: Optional[List[object]] = None, configured: bool = True) -> None:
        self.responses = list(responses or [])
        self.configured = configured
        self.prompts: List[str] = []

    async def generate(self, prompt: str, system_message: Optional[str] = None) -> str:
        self.prompts.append(prompt)
        if not self.responses:
            raise GenerationFailure("No scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def lesson_json(subject: str = "Computing", class_level: str = "Basic 4", week: str = "Week 2", **extra) -> dict:
    """A lesson object shaped like generation output."""
    lesson = {
        "term": "1",
        "weekNumber": week,
        "weekEnding": "12/01/2024",
        "day": "Monday",
        "subject": subject,
        "duration": "60 mins",
        "strand": "Strand 1: Introduction to Computing",
        "class": class_level,
        "classSize": "35",
        "subStrand": "Parts of a Computer",
        "contentStandard": "B4.1.1.1: Demonstrate knowledge of the parts of a computer",
        "indicator": "B4.1.1.1.1 Identify the parts of a computer",
        "lesson": "1 of 1",
        "performanceIndicator": "identify the parts of a computer",
        "coreCompetencies": "Critical thinking",
        "keywords": "monitor, keyboard, mouse",
        "reference": "Some other reference",
        "phases": {
            "starter": {
                "duration": "10 mins",
                "learnerActivities": "Recap Activity: learners name devices at home.",
                "resources": "pictures",
            },
            "newLearning": {
                "duration": "40 mins",
                "learnerActivities": "Activity 1: Learners observe a computer. Activity 2: Learners label the parts.",
                "resources": "computer, charts",
            },
            "reflection": {
                "duration": "10 mins",
                "learnerActivities": "Learners summarise the lesson.",
                "resources": "",
            },
        },
    }
    lesson.update(extra)
    return lesson


def lesson_text(**kwargs) -> str:
    return json.dumps(lesson_json(**kwargs))


# ---------------------------------------------------------------------------
# Per-test fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def draft_store() -> MemoryDraftStore:
    return MemoryDraftStore()


@pytest.fixture
def generator() -> FakeGenerationClient:
    return FakeGenerationClient()


@pytest_asyncio.fixture
async def client(
    draft_store: MemoryDraftStore,
    generator: FakeGenerationClient,
) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx AsyncClient wired to the FastAPI app with storage and generation
    dependencies overridden.
    """

    async def _override_store():
        return draft_store

    async def _override_generator():
        return generator

    app.dependency_overrides[get_draft_store] = _override_store
    app.dependency_overrides[get_generation_client] = _override_generator

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
