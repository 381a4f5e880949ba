import asyncio
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Optional

from fastapi import (
    BackgroundTasks,
    Depends,
    FastAPI,
    Header,
    HTTPException,
    Request,
    Response,
    WebSocket,
    WebSocketDisconnect,
)
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from auth import TokenVerifier, bearer_subject
from coach import CoachService, HostedModelClient
from config import get_settings
from database import SessionLocal
from documents import Mood, to_local_wall_time
from errors import (
    AuthenticationError,
    ExpenseNotAllowed,
    ExternalServiceError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from models import Budget, Expense, ExpenseCategory, Goal, GoalPriority, User
from notifications import NotificationService, PushHub, Subscription
from periods import local_now
from scheduler import SchedulerManager
from schemas import (
    BudgetIn,
    BudgetUpdateIn,
    CancelIn,
    ChatIn,
    ContributionIn,
    ExpenseCheckIn,
    ExpenseIn,
    ExpenseUpdateIn,
    GoalIn,
    GoalUpdateIn,
    SettingsIn,
    TrackEventIn,
    UserSyncIn,
)
from services import (
    AnalyticsService,
    BudgetService,
    ExpenseService,
    GoalService,
    UserService,
    run_anomaly_check,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="FinTrack")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_settings().client_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

session_factory = SessionLocal
verifier = TokenVerifier()
push_hub = PushHub()
notifications = NotificationService(push_hub.publish)
model_client = HostedModelClient()


def get_db():
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


scheduler_manager = SchedulerManager(notifications)


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


@contextmanager
def service_errors() -> Iterator[None]:
    try:
        yield
    except ValidationError as exc:
        raise HTTPException(
            status_code=400,
            detail={"message": str(exc), "errors": exc.field_errors},
        ) from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except UnauthorizedError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except ExpenseNotAllowed as exc:
        raise HTTPException(
            status_code=409,
            detail={"message": exc.reason, "budget_id": exc.budget_id},
        ) from exc
    except AuthenticationError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    except ExternalServiceError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


def current_subject(authorization: Optional[str] = Header(default=None)) -> str:
    with service_errors():
        return bearer_subject(authorization, verifier)


def current_user(
    subject: str = Depends(current_subject), db: Session = Depends(get_db)
) -> User:
    with service_errors():
        return UserService(db).get_by_subject(subject)


def ensure_same_subject(requested: Optional[str], subject: str, what: str) -> None:
    if requested != subject:
        with service_errors():
            raise UnauthorizedError(f"Unauthorized access to {what}.")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def budget_payload(budget: Budget, now: Optional[datetime] = None) -> dict[str, Any]:
    now = now or local_now()
    return {
        "id": budget.id,
        "name": budget.name,
        "category": budget.category.value,
        "amount": float(budget.amount),
        "spent": float(budget.spent),
        "currency": budget.currency.value,
        "remaining": budget.remaining,
        "spent_percentage": budget.spent_percentage,
        "status": budget.status.value,
        "days_remaining": budget.days_remaining(now),
        "projected_spend": budget.projected_spend(now),
        "adherence_score": budget.adherence_score(),
        "period": budget.period.model_dump(mode="json"),
        "alert_thresholds": budget.alert_thresholds.model_dump(mode="json"),
        "emotional_controls": budget.emotional_controls.model_dump(mode="json"),
        "rules": budget.rules.model_dump(mode="json"),
        "ai_optimization": budget.ai_optimization.model_dump(mode="json"),
        "performance": budget.performance.model_dump(mode="json"),
        "tags": list(budget.tags),
        "notes": budget.notes,
        "is_active": budget.is_active,
        "is_archived": budget.is_archived,
        "last_reset_at": _iso(budget.last_reset_at),
        "next_reset_at": _iso(budget.next_reset_at),
    }


def expense_payload(expense: Expense) -> dict[str, Any]:
    return {
        "id": expense.id,
        "amount": float(expense.amount),
        "currency": expense.currency.value,
        "description": expense.description,
        "category": expense.category.value,
        "subcategory": expense.subcategory,
        "vendor": expense.vendor.model_dump(mode="json"),
        "payment_method": expense.payment_method.model_dump(mode="json"),
        "transaction_id": expense.transaction_id,
        "date": expense.date.isoformat(),
        "tags": list(expense.tags),
        "notes": expense.notes,
        "is_recurring": expense.is_recurring,
        "recurring_details": expense.recurring_details.model_dump(mode="json"),
        "split_details": expense.split_details.model_dump(mode="json"),
        "source": expense.source.model_dump(mode="json"),
        "mood": expense.mood.model_dump(mode="json"),
        "emotional_context": expense.emotional_context.model_dump(mode="json"),
        "ai_analysis": expense.ai_analysis.model_dump(mode="json"),
        "location": expense.location.model_dump(mode="json"),
        "budget_id": expense.budget_id,
        "is_deleted": expense.is_deleted,
        "deleted_at": _iso(expense.deleted_at),
        "version": expense.version,
    }


def goal_payload(goal: Goal, now: Optional[datetime] = None) -> dict[str, Any]:
    now = now or local_now()
    return {
        "id": goal.id,
        "title": goal.title,
        "description": goal.description,
        "type": goal.type.value,
        "target_amount": float(goal.target_amount),
        "current_amount": float(goal.current_amount),
        "currency": goal.currency.value,
        "progress_percentage": goal.progress_percentage,
        "remaining_amount": goal.remaining_amount,
        "days_remaining": goal.days_remaining(now),
        "required_daily_savings": goal.required_daily_savings(now),
        "current_velocity": goal.current_velocity,
        "timeline": goal.timeline.model_dump(mode="json"),
        "priority": goal.priority.value,
        "category": goal.category.value if goal.category else None,
        "recurring_contribution": goal.recurring_contribution.model_dump(mode="json"),
        "milestones": [m.model_dump(mode="json") for m in goal.milestones],
        "strategies": goal.strategies.model_dump(mode="json"),
        "tracking": goal.tracking.model_dump(mode="json"),
        "ai_optimization": goal.ai_optimization.model_dump(mode="json"),
        "notifications": goal.notifications.model_dump(mode="json"),
        "sharing": goal.sharing.model_dump(mode="json"),
        "status": goal.status.value,
        "tags": list(goal.tags),
        "notes": goal.notes,
        "is_archived": goal.is_archived,
    }


def _anomaly_task(expense_id: int) -> None:
    run_anomaly_check(expense_id, session_factory, notifications)


@app.get("/health")
def health():
    return {"status": "OK", "timestamp": local_now().isoformat()}


# -- users ---------------------------------------------------------------


@app.post("/api/auth/sync", status_code=200)
def sync_user(
    data: UserSyncIn,
    subject: str = Depends(current_subject),
    db: Session = Depends(get_db),
):
    ensure_same_subject(data.subject, subject, "this account")
    with service_errors():
        user = UserService(db).sync(subject, data.name, data.email)
    return {
        "id": user.id,
        "subject": user.subject,
        "name": user.name,
        "email": user.email,
        "currency": user.currency.value,
        "timezone": user.timezone,
    }


@app.get("/api/users/settings/{user_subject}")
def get_settings_route(
    user_subject: str,
    subject: str = Depends(current_subject),
    db: Session = Depends(get_db),
):
    ensure_same_subject(user_subject, subject, "user settings")
    with service_errors():
        return UserService(db).settings(subject)


@app.put("/api/users/settings/{user_subject}")
def update_settings_route(
    user_subject: str,
    data: SettingsIn,
    subject: str = Depends(current_subject),
    db: Session = Depends(get_db),
):
    ensure_same_subject(user_subject, subject, "user settings")
    ensure_same_subject(data.user_id, subject, "user settings")
    with service_errors():
        settings = UserService(db).update_settings(subject, data)
    return {"message": "Settings updated successfully", "user": settings}


# -- budgets -------------------------------------------------------------


@app.get("/api/budget")
def list_budgets(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return [budget_payload(b) for b in BudgetService(db, user.id).list()]


@app.get("/api/budget/active")
def active_budgets(user: User = Depends(current_user), db: Session = Depends(get_db)):
    budgets = BudgetService(db, user.id).list(active_only=True)
    return [budget_payload(b) for b in budgets]


@app.post("/api/budget", status_code=201)
def create_budget(
    data: BudgetIn, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    with service_errors():
        budget = BudgetService(db, user.id).create(data)
    return budget_payload(budget)


@app.put("/api/budget/{budget_id}")
def update_budget(
    budget_id: int,
    data: BudgetUpdateIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        budget = BudgetService(db, user.id).update(budget_id, data)
    return budget_payload(budget)


@app.post("/api/budget/{budget_id}/reset")
def reset_budget(
    budget_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    with service_errors():
        budget = BudgetService(db, user.id).reset_for_new_period(budget_id)
    return budget_payload(budget)


@app.post("/api/budget/{budget_id}/check")
def check_budget(
    budget_id: int,
    data: ExpenseCheckIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    candidate = Expense(
        amount=data.amount,
        description="",
        category=ExpenseCategory.other,
        mood=Mood(tag=data.mood),
    )
    with service_errors():
        decision = BudgetService(db, user.id).check_expense(budget_id, candidate)
    return {"allowed": decision.allowed, "reason": decision.reason}


@app.post("/api/budget/{budget_id}/archive")
def archive_budget(
    budget_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    with service_errors():
        budget = BudgetService(db, user.id).archive(budget_id)
    return budget_payload(budget)


# -- expenses ------------------------------------------------------------


@app.get("/api/expenses")
def list_expenses(
    request: Request,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    params = request.query_params
    try:
        page = max(int(params.get("page", "1")), 1)
        limit = min(max(int(params.get("limit", "50")), 1), 100)
        start = (
            to_local_wall_time(datetime.fromisoformat(params["start"]))
            if "start" in params
            else None
        )
        end = (
            to_local_wall_time(datetime.fromisoformat(params["end"]))
            if "end" in params
            else None
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    offset = (page - 1) * limit
    with service_errors():
        items = ExpenseService(db, user.id).list(
            limit=limit + 1,
            offset=offset,
            category=params.get("category"),
            start=start,
            end=end,
            include_deleted=params.get("include_deleted") == "true",
        )
    has_more = len(items) > limit
    items = items[:limit]
    return {
        "items": [expense_payload(e) for e in items],
        "page": page,
        "limit": limit,
        "has_more": has_more,
    }


@app.get("/api/expenses/recent")
def recent_expenses(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return [expense_payload(e) for e in ExpenseService(db, user.id).recent()]


@app.get("/api/expenses/recurring")
def recurring_expenses(
    user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return [expense_payload(e) for e in ExpenseService(db, user.id).recurring()]


@app.post("/api/expenses", status_code=201)
def create_expense(
    data: ExpenseIn,
    background_tasks: BackgroundTasks,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        expense = ExpenseService(db, user.id, notifications).create(data)
    background_tasks.add_task(_anomaly_task, expense.id)
    return expense_payload(expense)


@app.put("/api/expenses/{expense_id}")
def update_expense(
    expense_id: int,
    data: ExpenseUpdateIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        expense = ExpenseService(db, user.id).update(expense_id, data)
    return expense_payload(expense)


@app.delete("/api/expenses/{expense_id}", status_code=204)
def delete_expense(
    expense_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    with service_errors():
        ExpenseService(db, user.id).soft_delete(expense_id)
    return Response(status_code=204)


@app.post("/api/expenses/{expense_id}/restore")
def restore_expense(
    expense_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    with service_errors():
        expense = ExpenseService(db, user.id).restore(expense_id)
    return expense_payload(expense)


@app.post("/api/expenses/{expense_id}/duplicate", status_code=201)
def duplicate_expense(
    expense_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    with service_errors():
        expense = ExpenseService(db, user.id).duplicate(expense_id)
    return expense_payload(expense)


# -- goals ---------------------------------------------------------------


@app.get("/api/goals")
def list_goals(
    priority: Optional[GoalPriority] = None,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    service = GoalService(db, user.id)
    goals = service.by_priority(priority) if priority else service.list()
    return [goal_payload(g) for g in goals]


@app.get("/api/goals/active")
def active_goals(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return [goal_payload(g) for g in GoalService(db, user.id).active()]


@app.get("/api/goals/overdue")
def overdue_goals(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return [goal_payload(g) for g in GoalService(db, user.id).overdue()]


@app.get("/api/goals/attention")
def goals_needing_attention(
    user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return [goal_payload(g) for g in GoalService(db, user.id).needing_attention()]


@app.get("/api/goals/stats")
def goal_stats(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return GoalService(db, user.id).stats()


@app.post("/api/goals", status_code=201)
def create_goal(
    data: GoalIn, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    with service_errors():
        goal = GoalService(db, user.id).create(data)
    return goal_payload(goal)


@app.get("/api/goals/{goal_id}")
def get_goal(
    goal_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    with service_errors():
        goal = GoalService(db, user.id).get(goal_id)
    return goal_payload(goal)


@app.put("/api/goals/{goal_id}")
def update_goal(
    goal_id: int,
    data: GoalUpdateIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        goal = GoalService(db, user.id).update(goal_id, data)
    return goal_payload(goal)


@app.post("/api/goals/{goal_id}/contributions")
def add_goal_contribution(
    goal_id: int,
    data: ContributionIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        goal = GoalService(db, user.id).add_contribution(goal_id, data)
    return goal_payload(goal)


@app.post("/api/goals/{goal_id}/toggle-pause")
def toggle_goal_pause(
    goal_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    with service_errors():
        goal = GoalService(db, user.id).toggle_pause(goal_id)
    return goal_payload(goal)


@app.post("/api/goals/{goal_id}/cancel")
def cancel_goal(
    goal_id: int,
    data: CancelIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        goal = GoalService(db, user.id).cancel(goal_id, data.reason)
    return goal_payload(goal)


@app.post("/api/goals/{goal_id}/archive")
def archive_goal(
    goal_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    with service_errors():
        goal = GoalService(db, user.id).archive(goal_id)
    return goal_payload(goal)


@app.post("/api/goals/{goal_id}/suggestions")
def goal_suggestions(
    goal_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    with service_errors():
        suggestions = GoalService(db, user.id).refresh_suggestions(goal_id)
    return [s.model_dump(mode="json") for s in suggestions]


@app.post("/api/goals/{goal_id}/risk")
def goal_risk(
    goal_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    with service_errors():
        assessment = GoalService(db, user.id).assess_risk(goal_id)
    return assessment.model_dump(mode="json")


# -- analytics, coach, integrations --------------------------------------


@app.get("/api/analytics/emotional-spend/{user_subject}")
def emotional_spend(
    user_subject: str, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    ensure_same_subject(user_subject, user.subject, "emotional spend data")
    return AnalyticsService(db, user.id).emotional_spend()


@app.get("/api/analytics/top-vendors/{user_subject}")
def top_vendors(
    user_subject: str, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    ensure_same_subject(user_subject, user.subject, "top vendors data")
    return AnalyticsService(db, user.id).top_vendors()


@app.post("/api/analytics/track-event")
def track_event(
    data: TrackEventIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    ensure_same_subject(data.user_id, user.subject, "event tracking")
    AnalyticsService(db, user.id).track_event(data.event_name, data.event_properties)
    return {"message": "Event tracked successfully."}


@app.post("/api/ai/chat")
def ai_chat(
    data: ChatIn, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    if data.user_id is not None:
        ensure_same_subject(data.user_id, user.subject, "the coach")
    reply = CoachService(db, user.id, model_client).reply(user, data.message)
    return {"reply": reply}


@app.post("/api/gmail/sync")
def gmail_sync(subject: str = Depends(current_subject)):
    return {"message": "Gmail sync initiated!", "user_id": subject}


@app.post("/api/sms/sync")
def sms_sync(subject: str = Depends(current_subject)):
    return {"message": "SMS sync initiated!", "user_id": subject}


# -- push ----------------------------------------------------------------


async def _forward(websocket: WebSocket, subscription: Subscription) -> None:
    while True:
        message = await subscription.queue.get()
        await websocket.send_json(message)


@app.websocket("/ws")
async def push_channel(websocket: WebSocket, token: Optional[str] = None):
    try:
        subject = verifier.verify(token)
    except AuthenticationError:
        await websocket.close(code=1008)
        return

    await websocket.accept()
    subscription = push_hub.subscribe(subject)
    forwarder: Optional[asyncio.Task] = None
    try:
        await websocket.send_json({"event": "connected", "payload": {}})
        forwarder = asyncio.create_task(_forward(websocket, subscription))
        # Inbound frames are ignored; reading only detects the disconnect.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        if forwarder is not None:
            forwarder.cancel()
        push_hub.unsubscribe(subscription)
