from __future__ import annotations

import json
import logging
from typing import Optional
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from sqlalchemy import select
from sqlalchemy.orm import Session

from config import get_settings
from errors import ExternalServiceError, InvalidResponse, ServiceUnavailable
from models import Budget, Expense, Goal, GoalStatus, User

logger = logging.getLogger(__name__)

MALFORMED_REPLY = (
    "I'm sorry, I couldn't generate a detailed response at this time. The AI "
    "might be having trouble understanding or generating content."
)
UNAVAILABLE_REPLY = (
    "I'm currently unable to connect to the AI service. Please try again later."
)


class HostedModelClient:
    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        settings = get_settings()
        self.api_url = api_url or settings.llm_api_url
        self.api_key = api_key if api_key is not None else settings.llm_api_key
        self.timeout = timeout or settings.llm_timeout_secs

    def complete(self, prompt: str) -> str:
        if not self.api_key:
            raise ServiceUnavailable("Hosted model API key is not configured")

        body = json.dumps(
            {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        ).encode("utf-8")
        url = f"{self.api_url}?{urlencode({'key': self.api_key})}"
        req = Request(
            url,
            data=body,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            method="POST",
        )
        try:
            with urlopen(req, timeout=self.timeout) as resp:
                raw = resp.read().decode("utf-8")
        except (HTTPError, URLError, TimeoutError) as exc:
            raise ServiceUnavailable("Failed to reach the hosted model") from exc

        try:
            payload = json.loads(raw)
            text = payload["candidates"][0]["content"]["parts"][0]["text"]
        except (json.JSONDecodeError, KeyError, IndexError, TypeError) as exc:
            raise InvalidResponse("Unexpected hosted model response") from exc
        if not isinstance(text, str):
            raise InvalidResponse("Unexpected hosted model response")
        return text


class CoachService:
    def __init__(
        self,
        session: Session,
        user_id: int,
        client: Optional[HostedModelClient] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id
        self.client = client or HostedModelClient()

    def _context(self) -> dict[str, list[dict[str, object]]]:
        expenses = self.session.scalars(
            select(Expense)
            .where(Expense.user_id == self.user_id, Expense.is_deleted.is_(False))
            .order_by(Expense.date.desc(), Expense.id.desc())
            .limit(5)
        ).all()
        budgets = self.session.scalars(
            select(Budget)
            .where(
                Budget.user_id == self.user_id,
                Budget.is_active.is_(True),
                Budget.is_archived.is_(False),
            )
            .order_by(Budget.id)
            .limit(3)
        ).all()
        goals = self.session.scalars(
            select(Goal)
            .where(
                Goal.user_id == self.user_id,
                Goal.status == GoalStatus.active,
                Goal.is_archived.is_(False),
            )
            .order_by(Goal.id)
            .limit(3)
        ).all()
        return {
            "expenses": [
                {
                    "desc": e.description,
                    "amount": float(e.amount),
                    "category": e.category.value,
                    "date": e.date.isoformat(),
                }
                for e in expenses
            ],
            "budgets": [
                {
                    "name": b.name,
                    "category": b.category.value,
                    "amount": float(b.amount),
                    "spent": float(b.spent),
                    "period": b.period.kind.value,
                }
                for b in budgets
            ],
            "goals": [
                {
                    "title": g.title,
                    "target": float(g.target_amount),
                    "current": float(g.current_amount),
                    "type": g.type.value,
                }
                for g in goals
            ],
        }

    def build_prompt(self, user: Optional[User], message: str) -> str:
        context = self._context()

        def section(items: list[dict[str, object]], empty: str) -> str:
            return json.dumps(items) if items else empty

        email = user.email if user else "N/A"
        return "\n".join(
            [
                "You are FinTrack, an AI financial coach. Your goal is to provide "
                "helpful, actionable, and empathetic financial advice.",
                f"The user's email is {email}.",
                "Here is some of their recent financial data:",
                "- Recent Expenses: "
                + section(context["expenses"], "No recent expenses."),
                "- Active Budgets: " + section(context["budgets"], "No active budgets."),
                "- Active Goals: " + section(context["goals"], "No active goals."),
                "",
                f'The user\'s query is: "{message}".',
                "",
                "Based on the provided information and the user's query, please give "
                "a concise, actionable financial tip or answer. If the query is too "
                "general or not financial, ask for more specific details or guide "
                "them towards financial topics. Keep your response under 200 words.",
            ]
        )

    def reply(self, user: Optional[User], message: str) -> str:
        prompt = self.build_prompt(user, message)
        try:
            return self.client.complete(prompt)
        except InvalidResponse:
            logger.exception(f"coach_failed: user_id={self.user_id} reason=invalid_response")
            return MALFORMED_REPLY
        except ExternalServiceError:
            logger.exception(f"coach_failed: user_id={self.user_id} reason=unavailable")
            return UNAVAILABLE_REPLY
