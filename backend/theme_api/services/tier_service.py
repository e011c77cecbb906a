"""
Tier service: subscription tiers, per-tier limits, plan catalogue and usage counters.

Every tier comparison in the codebase goes through ``tier_rank`` / ``can_access``
so the ordering lives in one place. ``recompute_user_tier`` is the only code
path that writes ``users.subscription_tier``; it derives the tier from the
Stripe mirror rows.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from theme_api.core import crud
from theme_api.core.config import settings
from theme_api.models.usage import UserUsage
from theme_api.models.user import User

log = logging.getLogger(__name__)

TIER_ORDER: tuple[str, ...] = ("free", "basic", "pro")
PAID_TIERS: tuple[str, ...] = ("basic", "pro")
UNLIMITED = -1

ACTIVE_STATUSES = frozenset({"active", "trialing"})

SUBSCRIPTION_LIMITS: dict[str, dict[str, Any]] = {
    "free": {
        "detailedAnalysisPerMonth": 10,
        "apiRequestsPerMonth": 0,
        "canExportData": False,
        "canSetCustomAlerts": False,
        "canAccessHistoricalData": False,
        "supportLevel": "basic",
    },
    "basic": {
        "detailedAnalysisPerMonth": UNLIMITED,
        "apiRequestsPerMonth": 0,
        "canExportData": False,
        "canSetCustomAlerts": True,
        "canAccessHistoricalData": False,
        "supportLevel": "basic",
    },
    "pro": {
        "detailedAnalysisPerMonth": UNLIMITED,
        "apiRequestsPerMonth": 10000,
        "canExportData": True,
        "canSetCustomAlerts": True,
        "canAccessHistoricalData": True,
        "supportLevel": "priority",
    },
}

CURRENCY = "jpy"

PLANS: dict[str, dict[str, Any]] = {
    "basic": {
        "name": "ベーシックプラン",
        "price": 980,
        "price_setting": "STRIPE_BASIC_PRICE_ID",
        "features": ["詳細分析無制限", "競合分析", "メール通知", "基本サポート"],
    },
    "pro": {
        "name": "プロプラン",
        "price": 2980,
        "price_setting": "STRIPE_PRO_PRICE_ID",
        "features": [
            "ベーシックプランの全機能",
            "API アクセス (10,000リクエスト/月)",
            "データエクスポート",
            "カスタムアラート",
            "優先サポート",
            "過去1年間のトレンド履歴",
        ],
    },
}

STATUS_LABELS = {
    "active": "アクティブ",
    "canceled": "キャンセル済み",
    "past_due": "支払い遅延",
    "unpaid": "未払い",
    "incomplete": "不完全",
    "incomplete_expired": "期限切れ",
    "trialing": "トライアル中",
    "paused": "一時停止",
}


def normalize_tier(tier: Optional[str]) -> str:
    value = (tier or "free").strip().lower()
    if value not in TIER_ORDER:
        log.warning("[tier_service] Unknown tier '%s', treating as 'free'", tier)
        return "free"
    return value


def tier_rank(tier: Optional[str]) -> int:
    return TIER_ORDER.index(normalize_tier(tier))


def can_access(user_tier: Optional[str], required_tier: Optional[str]) -> bool:
    """True when ``user_tier`` is at least ``required_tier``."""
    return tier_rank(user_tier) >= tier_rank(required_tier)


def get_limits(tier: Optional[str]) -> dict[str, Any]:
    return dict(SUBSCRIPTION_LIMITS[normalize_tier(tier)])


def check_usage_limit(tier: Optional[str], feature: str, current_usage: int) -> dict[str, Any]:
    """
    Check a numeric monthly limit for a tier.

    Args:
        tier: Subscription tier name
        feature: Numeric limit key (e.g. 'detailedAnalysisPerMonth')
        current_usage: Usage so far this month

    Returns:
        Dict with ``allowed``, ``limit`` and ``remaining`` (-1 means unlimited)
    """
    limits = get_limits(tier)
    limit = limits.get(feature)
    if not isinstance(limit, int) or isinstance(limit, bool):
        raise KeyError(f"'{feature}' is not a numeric limit")
    if limit == UNLIMITED:
        return {"allowed": True, "limit": UNLIMITED, "remaining": UNLIMITED}
    return {
        "allowed": current_usage < limit,
        "limit": limit,
        "remaining": max(0, limit - current_usage),
    }


def upgrade_options(tier: Optional[str]) -> list[str]:
    return list(TIER_ORDER[tier_rank(tier) + 1:])


def downgrade_options(tier: Optional[str]) -> list[str]:
    return list(TIER_ORDER[:tier_rank(tier)])


def format_status(status: str) -> str:
    return STATUS_LABELS.get(status, status)


# --- Plans ---------------------------------------------------------------------

def price_id_for_plan(plan_name: str) -> str:
    """Configured Stripe price id for a paid plan (empty string when unset)."""
    plan = PLANS.get(plan_name)
    if not plan:
        raise KeyError(f"Unknown plan '{plan_name}'")
    return getattr(settings, plan["price_setting"], "") or ""


def plan_for_price_id(price_id: Optional[str]) -> Optional[str]:
    if not price_id:
        return None
    for plan_name in PLANS:
        if price_id_for_plan(plan_name) == price_id:
            return plan_name
    return None


def public_plans() -> list[dict[str, Any]]:
    return [
        {
            "id": plan_name,
            "name": plan["name"],
            "price": plan["price"],
            "currency": CURRENCY,
            "features": list(plan["features"]),
            "limits": get_limits(plan_name),
        }
        for plan_name, plan in PLANS.items()
    ]


# --- Recompute -----------------------------------------------------------------

def compute_effective_tier(subscriptions: Iterable) -> str:
    """Highest plan among subscriptions whose status counts as active; 'free' if none."""
    best = "free"
    for sub in subscriptions:
        if getattr(sub, "status", None) not in ACTIVE_STATUSES:
            continue
        plan = getattr(sub, "plan_name", None)
        if plan in PAID_TIERS and tier_rank(plan) > tier_rank(best):
            best = plan
    return best


def recompute_user_tier(session: Session, user_id: UUID) -> Optional[str]:
    """Derive the user's tier from their mirror rows and persist it.

    Returns the new tier, or None when the user does not exist.
    """
    user = crud.get_user_by_id(session, user_id)
    if not user:
        log.warning("[tier_service] Cannot recompute tier: user %s not found", user_id)
        return None
    tier = compute_effective_tier(crud.get_user_subscriptions(session, user.id))
    if user.subscription_tier != tier:
        log.info("[tier_service] User %s tier %s -> %s", user.id, user.subscription_tier, tier)
        user.subscription_tier = tier
        user.updated_at = datetime.utcnow()
        session.add(user)
        session.commit()
        session.refresh(user)
    return tier


# --- Usage ---------------------------------------------------------------------

def current_month(now: Optional[datetime] = None) -> str:
    return (now or datetime.utcnow()).strftime("%Y-%m")


def _usage_row(session: Session, user_id: UUID, feature: str, month: str) -> Optional[UserUsage]:
    stmt = (
        select(UserUsage)
        .where(UserUsage.user_id == user_id)
        .where(UserUsage.feature == feature)
        .where(UserUsage.month == month)
    )
    return session.exec(stmt).first()


def get_current_usage(session: Session, user_id: UUID, feature: str) -> int:
    row = _usage_row(session, user_id, feature, current_month())
    return row.count if row else 0


def increment_usage(session: Session, user_id: UUID, feature: str, amount: int = 1) -> int:
    """Add ``amount`` to this month's counter, creating the row on first use."""
    month = current_month()
    for attempt in range(2):
        row = _usage_row(session, user_id, feature, month)
        if row is None:
            row = UserUsage(user_id=user_id, feature=feature, month=month, count=0)
        row.count += amount
        row.updated_at = datetime.utcnow()
        session.add(row)
        try:
            session.commit()
        except IntegrityError:
            # Concurrent first insert for the same key; retry as an update
            session.rollback()
            if attempt:
                raise
            continue
        session.refresh(row)
        return row.count
    raise RuntimeError("usage increment retry exhausted")


def consume_usage(session: Session, user_id: UUID, feature: str, limit: int) -> Optional[int]:
    """
    Take one unit of a monthly allowance in a single conditional UPDATE.

    Returns the new count, or None when the counter is already at ``limit``.
    ``UNLIMITED`` always succeeds.
    """
    month = current_month()
    if _usage_row(session, user_id, feature, month) is None:
        session.add(UserUsage(user_id=user_id, feature=feature, month=month, count=0))
        try:
            session.commit()
        except IntegrityError:
            # Another request created the row first
            session.rollback()

    stmt = (
        update(UserUsage)
        .where(UserUsage.user_id == user_id)
        .where(UserUsage.feature == feature)
        .where(UserUsage.month == month)
        .values(count=UserUsage.count + 1, updated_at=datetime.utcnow())
    )
    if limit != UNLIMITED:
        stmt = stmt.where(UserUsage.count < limit)
    result = session.execute(stmt)
    session.commit()
    if result.rowcount != 1:
        return None
    row = _usage_row(session, user_id, feature, month)
    session.refresh(row)
    return row.count


def user_summary(session: Session, user: User) -> dict[str, Any]:
    """Payload for /api/users/me."""
    tier = normalize_tier(user.subscription_tier)
    limits = get_limits(tier)
    used = get_current_usage(session, user.id, "detailedAnalysis")
    return {
        "user": user,
        "tier": tier,
        "limits": limits,
        "usage": {
            "month": current_month(),
            "detailedAnalysis": used,
            **check_usage_limit(tier, "detailedAnalysisPerMonth", used),
        },
        "upgradeOptions": upgrade_options(tier),
    }
