"""
HTTP routes for the dashboard widgets and the sign-in callback.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import RedirectResponse

from finboard import analytics
from finboard.auth import (
    SIGN_IN_ERROR_PATH,
    AuthClient,
    AuthExchangeError,
    resolve_redirect,
)
from finboard.config import Settings, get_settings
from finboard.db import (
    AccountRecord,
    BudgetRecord,
    DbClient,
    NetWorthSnapshotRecord,
    NotificationRecord,
    TransactionRecord,
)
from finboard.dependencies import get_auth_client, get_current_user_id, get_db_client
from finboard.schemas import (
    AccountCreate,
    AccountResponse,
    BudgetCreate,
    BudgetResponse,
    MonthlySummaryResponse,
    NetWorthPoint,
    NetWorthResponse,
    NotificationResponse,
    SpendingAnalyticsResponse,
    StatusResponse,
    TransactionCreate,
    TransactionResponse,
    UnreadCountResponse,
)
from finboard.types import NotificationType, TransactionType

logger = logging.getLogger(__name__)

router = APIRouter()
auth_router = APIRouter()


def _account_response(account: AccountRecord) -> AccountResponse:
    return AccountResponse(
        id=account.id,
        user_id=account.user_id,
        name=account.name,
        type=account.type,
        balance=account.balance,
        institution=account.institution,
        account_number=account.account_number,
        is_active=account.is_active,
    )


def _transaction_response(transaction: TransactionRecord) -> TransactionResponse:
    return TransactionResponse(
        id=transaction.id,
        user_id=transaction.user_id,
        account_id=transaction.account_id,
        description=transaction.description,
        amount=transaction.amount,
        category=transaction.category,
        transaction_type=transaction.transaction_type,
        transaction_date=transaction.transaction_date,
    )


def _notification_response(notification: NotificationRecord) -> NotificationResponse:
    return NotificationResponse(
        id=notification.id,
        title=notification.title,
        message=notification.message,
        type=notification.type,
        is_read=notification.is_read,
        created_at=notification.created_at,
    )


def _budget_spent(db: DbClient, budget: BudgetRecord, day: date) -> float:
    start, end = analytics.budget_window(
        budget.period, day, budget.start_date, budget.end_date
    )
    if start > end:
        return 0.0
    expenses = db.list_transactions(
        budget.user_id,
        transaction_type=TransactionType.EXPENSE,
        category=budget.category,
        start=start,
        end=end,
    )
    return analytics.sum_amounts(expenses)


def _budget_response(db: DbClient, budget: BudgetRecord, day: date) -> BudgetResponse:
    spent = _budget_spent(db, budget, day)
    percentage = analytics.budget_percentage(spent, budget.amount)
    return BudgetResponse(
        id=budget.id,
        category=budget.category,
        amount=budget.amount,
        period=budget.period,
        start_date=budget.start_date,
        end_date=budget.end_date,
        spent=round(spent, 2),
        percentage=percentage,
        status=analytics.budget_status(percentage),
    )


def _notify_budget_thresholds(db: DbClient, transaction: TransactionRecord) -> None:
    """
    Raise a warning when ``transaction`` pushes a budget past an alert level
    in its current period. Expenses dated outside that period never alert.
    """
    today = date.today()
    day = transaction.transaction_date
    for budget in db.list_budgets(transaction.user_id):
        if budget.category != transaction.category:
            continue
        start, end = analytics.budget_window(
            budget.period, today, budget.start_date, budget.end_date
        )
        if not start <= day <= end:
            continue
        spent_after = _budget_spent(db, budget, today)
        threshold = analytics.crossed_budget_threshold(
            spent_after - transaction.amount, spent_after, budget.amount
        )
        if threshold is None:
            continue
        if threshold >= 100:
            message = f"You have exceeded your {budget.category} budget."
        else:
            message = f"You've used {threshold}% of your {budget.category} budget."
        db.create_notification(
            NotificationRecord(
                user_id=transaction.user_id,
                title="Budget Alert",
                message=message,
                type=NotificationType.WARNING,
            )
        )
        logger.info(
            "Budget %s crossed %s%% for user %s",
            budget.id,
            threshold,
            transaction.user_id,
        )


def _month_or_400(month: Optional[str]) -> date:
    try:
        return analytics.parse_month(month)
    except ValueError:
        raise HTTPException(status_code=400, detail="month must be YYYY-MM") from None


@router.get("/accounts", response_model=list[AccountResponse])
def list_accounts(
    user_id: str = Depends(get_current_user_id),
    db: DbClient = Depends(get_db_client),
):
    return [_account_response(a) for a in db.list_accounts(user_id)]


@router.post("/accounts", response_model=AccountResponse, status_code=201)
def create_account(
    payload: AccountCreate,
    user_id: str = Depends(get_current_user_id),
    db: DbClient = Depends(get_db_client),
):
    account = db.create_account(
        AccountRecord(
            user_id=user_id,
            name=payload.name,
            type=payload.type,
            balance=payload.balance,
            institution=payload.institution,
            account_number=payload.account_number,
            is_active=True,
        )
    )
    return _account_response(account)


@router.get("/transactions", response_model=list[TransactionResponse])
def list_transactions(
    transaction_type: Optional[TransactionType] = Query(None),
    category: Optional[str] = Query(None),
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    user_id: str = Depends(get_current_user_id),
    db: DbClient = Depends(get_db_client),
):
    transactions = db.list_transactions(
        user_id,
        transaction_type=transaction_type,
        category=category,
        start=start,
        end=end,
    )
    return [_transaction_response(t) for t in transactions]


@router.post("/transactions", response_model=TransactionResponse, status_code=201)
def create_transaction(
    payload: TransactionCreate,
    user_id: str = Depends(get_current_user_id),
    db: DbClient = Depends(get_db_client),
):
    transaction = db.create_transaction(
        TransactionRecord(
            user_id=user_id,
            account_id=payload.account_id,
            description=payload.description,
            amount=payload.amount,
            category=payload.category,
            transaction_type=payload.transaction_type,
            transaction_date=payload.transaction_date,
        )
    )
    if transaction.transaction_type == TransactionType.EXPENSE:
        _notify_budget_thresholds(db, transaction)
    return _transaction_response(transaction)


@router.get("/budgets", response_model=list[BudgetResponse])
def list_budgets(
    user_id: str = Depends(get_current_user_id),
    db: DbClient = Depends(get_db_client),
):
    today = date.today()
    return [_budget_response(db, b, today) for b in db.list_budgets(user_id)]


@router.post("/budgets", response_model=BudgetResponse, status_code=201)
def create_budget(
    payload: BudgetCreate,
    user_id: str = Depends(get_current_user_id),
    db: DbClient = Depends(get_db_client),
):
    if payload.end_date and payload.end_date < payload.start_date:
        raise HTTPException(status_code=400, detail="end_date is before start_date")
    budget = db.create_budget(
        BudgetRecord(
            user_id=user_id,
            category=payload.category,
            amount=payload.amount,
            period=payload.period,
            start_date=payload.start_date,
            end_date=payload.end_date,
        )
    )
    return _budget_response(db, budget, date.today())


@router.get("/summary/monthly", response_model=MonthlySummaryResponse)
def monthly_summary(
    month: Optional[str] = Query(None, description="YYYY-MM, defaults to this month"),
    user_id: str = Depends(get_current_user_id),
    db: DbClient = Depends(get_db_client),
):
    first_day = _month_or_400(month)
    start, end = analytics.month_bounds(first_day)
    income = db.list_transactions(
        user_id, transaction_type=TransactionType.INCOME, start=start, end=end
    )
    expenses = db.list_transactions(
        user_id, transaction_type=TransactionType.EXPENSE, start=start, end=end
    )
    summary = analytics.monthly_summary(
        analytics.sum_amounts(income), analytics.sum_amounts(expenses)
    )
    return MonthlySummaryResponse(month=first_day.strftime("%Y-%m"), **summary)


@router.get("/analytics/spending", response_model=SpendingAnalyticsResponse)
def spending_analytics(
    month: Optional[str] = Query(None, description="YYYY-MM, defaults to this month"),
    user_id: str = Depends(get_current_user_id),
    db: DbClient = Depends(get_db_client),
):
    first_day = _month_or_400(month)
    start, end = analytics.month_bounds(first_day)
    expenses = db.list_transactions(
        user_id, transaction_type=TransactionType.EXPENSE, start=start, end=end
    )
    return SpendingAnalyticsResponse(
        month=first_day.strftime("%Y-%m"),
        total_expenses=round(analytics.sum_amounts(expenses), 2),
        categories=analytics.category_totals(expenses),
        transactions=[_transaction_response(t) for t in expenses],
    )


@router.get("/net-worth", response_model=NetWorthResponse)
def net_worth(
    timeframe: str = Query("month", pattern="^(month|quarter|year)$"),
    user_id: str = Depends(get_current_user_id),
    db: DbClient = Depends(get_db_client),
):
    current = analytics.net_worth(db.list_accounts(user_id))
    since = date.today() - timedelta(days=analytics.timeframe_days(timeframe))
    series = db.list_net_worth_snapshots(user_id, since=since)
    return NetWorthResponse(
        timeframe=timeframe,
        assets=current["assets"],
        liabilities=current["liabilities"],
        net_worth=current["net_worth"],
        change=analytics.net_worth_change(series),
        series=[
            NetWorthPoint(
                snapshot_date=s.snapshot_date,
                assets=s.assets,
                liabilities=s.liabilities,
                net_worth=s.net_worth,
            )
            for s in series
        ],
    )


@router.post("/net-worth/snapshots", response_model=NetWorthPoint, status_code=201)
def record_net_worth_snapshot(
    user_id: str = Depends(get_current_user_id),
    db: DbClient = Depends(get_db_client),
):
    current = analytics.net_worth(db.list_accounts(user_id))
    snapshot = db.save_net_worth_snapshot(
        NetWorthSnapshotRecord(
            user_id=user_id,
            snapshot_date=date.today(),
            assets=current["assets"],
            liabilities=current["liabilities"],
        )
    )
    return NetWorthPoint(
        snapshot_date=snapshot.snapshot_date,
        assets=snapshot.assets,
        liabilities=snapshot.liabilities,
        net_worth=snapshot.net_worth,
    )


@router.get("/notifications", response_model=list[NotificationResponse])
def list_notifications(
    unread_only: bool = Query(False),
    user_id: str = Depends(get_current_user_id),
    db: DbClient = Depends(get_db_client),
):
    notifications = db.list_notifications(user_id, unread_only=unread_only)
    return [_notification_response(n) for n in notifications]


@router.get("/notifications/unread-count", response_model=UnreadCountResponse)
def unread_notification_count(
    user_id: str = Depends(get_current_user_id),
    db: DbClient = Depends(get_db_client),
):
    return UnreadCountResponse(
        count=len(db.list_notifications(user_id, unread_only=True))
    )


@router.post("/notifications/{notification_id}/read", response_model=StatusResponse)
def mark_notification_read(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    db: DbClient = Depends(get_db_client),
):
    if not db.mark_notification_read(user_id, notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return StatusResponse(status="ok")


@router.delete("/notifications/{notification_id}", response_model=StatusResponse)
def delete_notification(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    db: DbClient = Depends(get_db_client),
):
    if not db.delete_notification(user_id, notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return StatusResponse(status="ok")


@auth_router.get("/auth/callback")
def auth_callback(
    request: Request,
    code: Optional[str] = Query(None),
    redirect_to: Optional[str] = Query(None),
    auth: AuthClient = Depends(get_auth_client),
    settings: Settings = Depends(get_settings),
):
    """
    Finish an OAuth sign-in: exchange the code, then send the browser on.
    """
    origin = f"{request.url.scheme}://{request.url.netloc}"
    if code:
        verifier = request.cookies.get(settings.auth_code_verifier_cookie)
        try:
            auth.exchange_code_for_session(code, code_verifier=verifier)
        except AuthExchangeError:
            logger.exception("Auth callback error")
            return RedirectResponse(f"{origin}{SIGN_IN_ERROR_PATH}")
    return RedirectResponse(resolve_redirect(origin, redirect_to))
