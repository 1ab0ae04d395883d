"""Shared fixtures: fake providers, a controllable clock, and profile extractors."""

import json
import re

import pytest

from elevate.contexts.intake.extractors import StaticSectionExtractor
from elevate.utils.llm import LLMProvider, LLMResponse

_SECTION_IN_PROMPT = re.compile(r"Evaluate the (\w+) section")


def section_of(prompt: str) -> str:
    """Section name a section-evaluation prompt is about ("" for other prompts)."""
    match = _SECTION_IN_PROMPT.search(prompt)
    return match.group(1).lower() if match else ""


class FakeProvider(LLMProvider):
    """
    In-process provider.

    handler(prompt) returns response text or an exception instance to raise.
    Every user prompt is recorded in .calls.
    """

    _retry_message = "Fake provider unavailable"

    def __init__(self, handler, name="openai"):
        self._provider_prefix = name
        self.handler = handler
        self.calls = []
        self.update_model("fake-model")

    async def _call_api(self, system_prompt, user_prompt, model):
        self.calls.append(user_prompt)
        outcome = self.handler(user_prompt)
        if isinstance(outcome, Exception):
            raise outcome
        return LLMResponse(content=outcome, model=model, input_tokens=10, output_tokens=20)

    @property
    def sections_called(self):
        return [section_of(prompt) for prompt in self.calls if section_of(prompt)]


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def _section_response(score, actions=(), insight="Clear and specific."):
    return json.dumps(
        {
            "score": score,
            "positiveInsight": insight,
            "gapAnalysis": "",
            "actionItems": [
                {"what": what, "why": "Improves fit", "how": "Edit the section", "priority": "high"}
                for what in actions
            ],
        }
    )


@pytest.fixture
def section_response():
    """Build a well-formed section evaluation response."""
    return _section_response


@pytest.fixture
def make_provider():
    """Build a FakeProvider from a handler (or a constant response string)."""

    def _make(handler, name="openai"):
        if isinstance(handler, str):
            text = handler
            handler = lambda prompt: text  # noqa: E731
        return FakeProvider(handler, name=name)

    return _make


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def profile_sections():
    """Section payloads of a fairly complete profile (about is long enough to pass)."""
    return {
        "photo": {"exists": True},
        "headline": {"text": "Senior Data Engineer | Spark, Airflow, dbt | Platform reliability"},
        "about": {"text": "I build data platforms. " * 40},
        "experience": {
            "items": [
                {"title": "Senior Data Engineer", "company": "Acme"},
                {"title": "Data Engineer", "company": "Northwind"},
            ]
        },
        "skills": {"items": [f"skill-{i}" for i in range(16)]},
        "education": {"items": [{"school": "State University"}]},
        "recommendations": {"items": [{"text": "Great colleague"}]},
    }


@pytest.fixture
def make_extractors():
    """Turn a section-name -> payload dict into a StaticSectionExtractor map."""

    def _make(sections):
        return {name: StaticSectionExtractor(name, payload) for name, payload in sections.items()}

    return _make
