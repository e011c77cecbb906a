from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import func, or_
from sqlmodel import Session, select

from ..models.processing import ProcessingJob
from ..models.subscription import Subscription
from ..models.theme import CompetitorAnalysis, Theme, ThemeCreate, TrendData
from ..models.user import User

ACTIVE_SUBSCRIPTION_STATUSES = ("active", "trialing")

THEME_SORT_FIELDS = {
    "monetization_score": Theme.monetization_score,
    "market_size": Theme.market_size,
    "created_at": Theme.created_at,
    "updated_at": Theme.updated_at,
    "title": Theme.title,
}


def _as_uuid(value) -> UUID:
    if isinstance(value, UUID):
        return value
    return UUID(str(value))


# --- Users -------------------------------------------------------------------

def get_user_by_id(session: Session, user_id: UUID) -> Optional[User]:
    return session.get(User, _as_uuid(user_id))


def get_user_by_customer_id(session: Session, customer_id: str) -> Optional[User]:
    statement = select(User).where(User.stripe_customer_id == customer_id)
    return session.exec(statement).first()


def get_or_create_user(session: Session, user_id: UUID, email: Optional[str]) -> User:
    user = get_user_by_id(session, user_id)
    if user:
        if email and user.email != email:
            user.email = email
            user.updated_at = datetime.utcnow()
            session.add(user)
            session.commit()
            session.refresh(user)
        return user
    user = User(id=_as_uuid(user_id), email=email)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


# --- Themes ------------------------------------------------------------------

def create_theme(session: Session, theme_create: ThemeCreate) -> Theme:
    theme = Theme.model_validate(theme_create)
    session.add(theme)
    session.commit()
    session.refresh(theme)
    return theme


def get_theme(session: Session, theme_id: UUID) -> Optional[Theme]:
    return session.get(Theme, _as_uuid(theme_id))


def get_themes_by_ids(session: Session, theme_ids: Iterable[UUID]) -> list[Theme]:
    ids = [_as_uuid(t) for t in theme_ids]
    if not ids:
        return []
    return list(session.exec(select(Theme).where(Theme.id.in_(ids))).all())


def list_themes(
    session: Session,
    *,
    category: Optional[str] = None,
    competition_level: Optional[str] = None,
    technical_difficulty: Optional[str] = None,
    min_monetization_score: Optional[int] = None,
    max_monetization_score: Optional[int] = None,
    min_market_size: Optional[int] = None,
    max_market_size: Optional[int] = None,
    search: Optional[str] = None,
    sort_by: str = "monetization_score",
    sort_order: str = "desc",
    offset: int = 0,
    limit: int = 20,
) -> tuple[list[Theme], int]:
    """Filtered, sorted page of themes plus the total match count."""
    conditions = []
    if category:
        conditions.append(Theme.category == category)
    if competition_level:
        conditions.append(Theme.competition_level == competition_level)
    if technical_difficulty:
        conditions.append(Theme.technical_difficulty == technical_difficulty)
    if min_monetization_score is not None:
        conditions.append(Theme.monetization_score >= min_monetization_score)
    if max_monetization_score is not None:
        conditions.append(Theme.monetization_score <= max_monetization_score)
    if min_market_size is not None:
        conditions.append(Theme.market_size >= min_market_size)
    if max_market_size is not None:
        conditions.append(Theme.market_size <= max_market_size)
    if search:
        # Literal substring match; % and _ in the term are escaped
        pattern = "%" + search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%"
        conditions.append(or_(
            Theme.title.ilike(pattern, escape="\\"),
            Theme.description.ilike(pattern, escape="\\"),
        ))

    count_stmt = select(func.count()).select_from(Theme)
    stmt = select(Theme)
    for cond in conditions:
        count_stmt = count_stmt.where(cond)
        stmt = stmt.where(cond)

    column = THEME_SORT_FIELDS.get(sort_by, Theme.monetization_score)
    stmt = stmt.order_by(column.asc() if sort_order == "asc" else column.desc())
    stmt = stmt.offset(offset).limit(limit)

    total = session.exec(count_stmt).one()
    return list(session.exec(stmt).all()), int(total or 0)


def get_trending_themes(session: Session, limit: int = 10) -> list[Theme]:
    stmt = (
        select(Theme)
        .order_by(Theme.monetization_score.desc(), Theme.updated_at.desc())
        .limit(limit)
    )
    return list(session.exec(stmt).all())


def get_themes_with_factors(session: Session, limit: int = 100) -> list[Theme]:
    stmt = select(Theme).where(Theme.monetization_factors.is_not(None)).limit(limit)
    return [t for t in session.exec(stmt).all() if t.monetization_factors]


def update_theme_score(session: Session, theme: Theme, score: int, factors: dict) -> Theme:
    theme.monetization_score = int(score)
    theme.monetization_factors = dict(factors)
    theme.updated_at = datetime.utcnow()
    session.add(theme)
    session.commit()
    session.refresh(theme)
    return theme


def latest_theme_update(session: Session) -> Optional[datetime]:
    return session.exec(select(func.max(Theme.updated_at))).one()


# --- Trend data / competitors -------------------------------------------------

def get_trend_data(session: Session, theme_id: UUID, limit: Optional[int] = None) -> list[TrendData]:
    stmt = (
        select(TrendData)
        .where(TrendData.theme_id == _as_uuid(theme_id))
        .order_by(TrendData.timestamp.desc())
    )
    if limit:
        stmt = stmt.limit(limit)
    return list(session.exec(stmt).all())


def get_trend_data_for_themes(session: Session, theme_ids: Iterable[UUID]) -> dict[UUID, list[TrendData]]:
    ids = [_as_uuid(t) for t in theme_ids]
    grouped: dict[UUID, list[TrendData]] = {tid: [] for tid in ids}
    if not ids:
        return grouped
    stmt = (
        select(TrendData)
        .where(TrendData.theme_id.in_(ids))
        .order_by(TrendData.timestamp.desc())
    )
    for row in session.exec(stmt).all():
        grouped.setdefault(row.theme_id, []).append(row)
    return grouped


def get_competitors(session: Session, theme_id: UUID) -> list[CompetitorAnalysis]:
    stmt = (
        select(CompetitorAnalysis)
        .where(CompetitorAnalysis.theme_id == _as_uuid(theme_id))
        .order_by(CompetitorAnalysis.created_at.asc())
    )
    return list(session.exec(stmt).all())


# --- Subscriptions -------------------------------------------------------------

def get_subscription_by_stripe_id(session: Session, stripe_subscription_id: str) -> Optional[Subscription]:
    statement = select(Subscription).where(Subscription.stripe_subscription_id == stripe_subscription_id)
    return session.exec(statement).first()


def get_user_subscriptions(session: Session, user_id: UUID) -> list[Subscription]:
    statement = (
        select(Subscription)
        .where(Subscription.user_id == _as_uuid(user_id))
        .order_by(Subscription.created_at.desc())
    )
    return list(session.exec(statement).all())


def get_active_subscription(session: Session, user_id: UUID) -> Optional[Subscription]:
    statement = (
        select(Subscription)
        .where(Subscription.user_id == _as_uuid(user_id))
        .where(Subscription.status.in_(ACTIVE_SUBSCRIPTION_STATUSES))
        .order_by(Subscription.created_at.desc())
    )
    return session.exec(statement).first()


def upsert_subscription(session: Session, user_id: UUID, stripe_subscription_id: str, **fields) -> Subscription:
    """Insert or update the mirror row keyed on stripe_subscription_id."""
    sub = get_subscription_by_stripe_id(session, stripe_subscription_id)
    if not sub:
        sub = Subscription(user_id=_as_uuid(user_id), stripe_subscription_id=stripe_subscription_id)
    elif user_id is not None:
        sub.user_id = _as_uuid(user_id)
    for k, v in fields.items():
        if hasattr(sub, k):
            setattr(sub, k, v)
    sub.updated_at = datetime.utcnow()
    session.add(sub)
    session.commit()
    session.refresh(sub)
    return sub


# --- Processing jobs -----------------------------------------------------------

def recent_processing_jobs(session: Session, job_type: str, limit: int = 10) -> list[ProcessingJob]:
    stmt = (
        select(ProcessingJob)
        .where(ProcessingJob.job_type == job_type)
        .order_by(ProcessingJob.created_at.desc())
        .limit(limit)
    )
    return list(session.exec(stmt).all())
