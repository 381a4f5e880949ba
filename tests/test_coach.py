import json
from datetime import datetime
from urllib.error import URLError

import pytest
from sqlalchemy.orm import Session

import coach
from coach import MALFORMED_REPLY, UNAVAILABLE_REPLY, CoachService, HostedModelClient
from errors import InvalidResponse, ServiceUnavailable
from models import User
from schemas import BudgetIn, ExpenseIn
from services import BudgetService, ExpenseService


class FakeResponse:
    def __init__(self, payload) -> None:
        self._raw = payload if isinstance(payload, bytes) else json.dumps(payload).encode()

    def read(self) -> bytes:
        return self._raw

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        return None


def _candidate(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def test_complete_posts_prompt_and_reads_first_candidate(monkeypatch) -> None:
    seen = {}

    def fake_urlopen(request, timeout):
        seen["url"] = request.full_url
        seen["body"] = json.loads(request.data)
        seen["timeout"] = timeout
        return FakeResponse(_candidate("Save 10% of your income."))

    monkeypatch.setattr(coach, "urlopen", fake_urlopen)
    client = HostedModelClient(api_url="https://llm.test/generate", api_key="k", timeout=5)

    assert client.complete("How do I save?") == "Save 10% of your income."
    assert seen["url"] == "https://llm.test/generate?key=k"
    assert seen["body"]["contents"][0]["parts"][0]["text"] == "How do I save?"
    assert seen["timeout"] == 5


def test_complete_without_key_is_unavailable() -> None:
    with pytest.raises(ServiceUnavailable):
        HostedModelClient(api_url="https://llm.test/generate", api_key="").complete("hi")


def test_complete_maps_transport_and_payload_errors(monkeypatch) -> None:
    client = HostedModelClient(api_url="https://llm.test/generate", api_key="k")

    def unreachable(request, timeout):
        raise URLError("connection refused")

    monkeypatch.setattr(coach, "urlopen", unreachable)
    with pytest.raises(ServiceUnavailable):
        client.complete("hi")

    monkeypatch.setattr(coach, "urlopen", lambda request, timeout: FakeResponse({"candidates": []}))
    with pytest.raises(InvalidResponse):
        client.complete("hi")

    monkeypatch.setattr(coach, "urlopen", lambda request, timeout: FakeResponse(b"<html>"))
    with pytest.raises(InvalidResponse):
        client.complete("hi")


class StubClient:
    def __init__(self, reply=None, error=None) -> None:
        self.reply = reply
        self.error = error
        self.prompts = []

    def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


def test_prompt_includes_recent_financial_context(session: Session, user: User) -> None:
    now = datetime(2024, 6, 10, 12, 0)
    BudgetService(session, user.id).create(
        BudgetIn(name="Food", category="food", amount=1000), now
    )
    ExpenseService(session, user.id).create(
        ExpenseIn(amount=120, description="Pizza night", category="dining", date=now),
        now,
    )
    client = StubClient(reply="Cook at home twice a week.")

    reply = CoachService(session, user.id, client).reply(user, "Am I overspending?")

    prompt = client.prompts[0]
    assert reply == "Cook at home twice a week."
    assert "The user's email is alice@example.com." in prompt
    assert "Pizza night" in prompt
    assert '"name": "Food"' in prompt
    assert "No active goals." in prompt
    assert 'The user\'s query is: "Am I overspending?".' in prompt


@pytest.mark.parametrize(
    ("error", "fallback"),
    [
        (InvalidResponse("bad"), MALFORMED_REPLY),
        (ServiceUnavailable("down"), UNAVAILABLE_REPLY),
    ],
)
def test_reply_falls_back_on_model_failure(
    session: Session, user: User, error, fallback
) -> None:
    service = CoachService(session, user.id, StubClient(error=error))

    assert service.reply(user, "Hello") == fallback
