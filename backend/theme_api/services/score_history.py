"""
Score history persistence and the analyses built on top of it.

Every recalculation of a theme's monetization score can append a snapshot to
``score_history``. The trend analysis, statistics and batch views below read
those snapshots back. Read helpers used by routes fail softly (log and return
None / empty) so a history outage never blocks the main score response.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping, Optional
from uuid import UUID

from sqlalchemy import delete
from sqlmodel import Session, select

from theme_api.models.score_history import ScoreHistory
from theme_api.models.theme import Theme
from theme_api.services.scoring import round_half_up
from theme_api.services.scoring.trend import (
    ScoreAnalysis,
    ScoreHistoryEntry,
    analyze_score_trend,
    classify_change,
)

log = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 100
ANALYSIS_WINDOW_DAYS = 30


def _to_entry(row: ScoreHistory) -> ScoreHistoryEntry:
    return ScoreHistoryEntry(
        score=row.score,
        factors=row.factors or {},
        timestamp=row.created_at,
        metadata=row.meta,
    )


def save_score_history(
    session: Session,
    theme_id: UUID,
    score: int,
    factors: Mapping[str, float],
    metadata: Optional[dict] = None,
) -> ScoreHistory:
    """Append one snapshot for a theme and commit."""
    row = ScoreHistory(
        theme_id=theme_id,
        score=int(score),
        factors=dict(factors),
        meta=dict(metadata) if metadata else None,
    )
    session.add(row)
    session.commit()
    session.refresh(row)
    return row


def save_batch_score_history(session: Session, entries: Iterable[Mapping[str, Any]]) -> int:
    """Insert many snapshots in a single commit.

    Each entry is a mapping with ``theme_id``, ``score``, ``factors`` and an
    optional ``metadata``. Returns the number of rows written.
    """
    rows = [
        ScoreHistory(
            theme_id=entry["theme_id"],
            score=int(entry["score"]),
            factors=dict(entry.get("factors") or {}),
            meta=entry.get("metadata"),
        )
        for entry in entries
    ]
    if not rows:
        return 0
    session.add_all(rows)
    session.commit()
    return len(rows)


def get_score_history(session: Session, theme_id: UUID, limit: int = DEFAULT_HISTORY_LIMIT) -> list[ScoreHistoryEntry]:
    stmt = (
        select(ScoreHistory)
        .where(ScoreHistory.theme_id == theme_id)
        .order_by(ScoreHistory.created_at.desc(), ScoreHistory.id.desc())
        .limit(limit)
    )
    return [_to_entry(row) for row in session.exec(stmt).all()]


def get_recent_score_history(session: Session, theme_id: UUID, days: int = ANALYSIS_WINDOW_DAYS) -> list[ScoreHistoryEntry]:
    since = datetime.utcnow() - timedelta(days=days)
    stmt = (
        select(ScoreHistory)
        .where(ScoreHistory.theme_id == theme_id)
        .where(ScoreHistory.created_at >= since)
        .order_by(ScoreHistory.created_at.desc(), ScoreHistory.id.desc())
    )
    return [_to_entry(row) for row in session.exec(stmt).all()]


def analyze_theme_score_trend(
    session: Session,
    theme_id: UUID,
    current_score: float,
    current_factors: Mapping[str, float],
) -> Optional[ScoreAnalysis]:
    """Trend analysis against the last 30 days of history, or None on lookup failure."""
    try:
        history = get_recent_score_history(session, theme_id, ANALYSIS_WINDOW_DAYS)
    except Exception as exc:
        session.rollback()
        log.warning("[score-history] Trend lookup failed for theme %s: %s", theme_id, exc)
        return None
    return analyze_score_trend(current_score, current_factors, history)


def get_score_statistics(session: Session, theme_id: UUID) -> Optional[dict[str, Any]]:
    """Summary statistics over the full history of a theme.

    Returns None when the lookup fails. A theme without history gets zeros
    and null timestamps.
    """
    try:
        history = get_score_history(session, theme_id, limit=DEFAULT_HISTORY_LIMIT)
    except Exception as exc:
        session.rollback()
        log.warning("[score-history] Statistics lookup failed for theme %s: %s", theme_id, exc)
        return None

    if not history:
        return {
            "current": 0,
            "average": 0,
            "min": 0,
            "max": 0,
            "totalEntries": 0,
            "firstRecorded": None,
            "lastRecorded": None,
        }

    scores = [entry.score for entry in history]
    return {
        "current": history[0].score,
        "average": round_half_up(sum(scores) / len(scores), 2),
        "min": min(scores),
        "max": max(scores),
        "totalEntries": len(history),
        "firstRecorded": history[-1].timestamp,
        "lastRecorded": history[0].timestamp,
    }


def get_batch_score_history(
    session: Session,
    theme_ids: Iterable[UUID],
    days: int = ANALYSIS_WINDOW_DAYS,
) -> dict[UUID, list[ScoreHistoryEntry]]:
    ids = list(theme_ids)
    grouped: dict[UUID, list[ScoreHistoryEntry]] = {tid: [] for tid in ids}
    if not ids:
        return grouped
    since = datetime.utcnow() - timedelta(days=days)
    stmt = (
        select(ScoreHistory)
        .where(ScoreHistory.theme_id.in_(ids))
        .where(ScoreHistory.created_at >= since)
        .order_by(ScoreHistory.created_at.desc(), ScoreHistory.id.desc())
    )
    for row in session.exec(stmt).all():
        grouped.setdefault(row.theme_id, []).append(_to_entry(row))
    return grouped


def _window_rows_by_theme(session: Session, days: int) -> dict[UUID, list[ScoreHistory]]:
    since = datetime.utcnow() - timedelta(days=days)
    stmt = (
        select(ScoreHistory)
        .where(ScoreHistory.created_at >= since)
        .order_by(ScoreHistory.created_at.desc(), ScoreHistory.id.desc())
    )
    grouped: dict[UUID, list[ScoreHistory]] = defaultdict(list)
    for row in session.exec(stmt).all():
        grouped[row.theme_id].append(row)
    return grouped


def _theme_titles(session: Session, theme_ids: Iterable[UUID]) -> dict[UUID, str]:
    ids = list(theme_ids)
    if not ids:
        return {}
    rows = session.exec(select(Theme.id, Theme.title).where(Theme.id.in_(ids))).all()
    return {row[0]: row[1] for row in rows}


def get_themes_with_significant_changes(
    session: Session,
    threshold_percentage: float = 10,
    days: int = 7,
) -> list[dict[str, Any]]:
    """Themes whose two newest snapshots in the window differ by at least the threshold.

    Themes with a single snapshot or a previous score of 0 are skipped.
    Results are ordered by absolute change, largest first.
    """
    changes = []
    for theme_id, rows in _window_rows_by_theme(session, days).items():
        if len(rows) < 2:
            continue
        current, previous = rows[0], rows[1]
        if previous.score == 0:
            continue
        change = (current.score - previous.score) / previous.score * 100
        if abs(change) >= threshold_percentage:
            changes.append({
                "themeId": theme_id,
                "currentScore": current.score,
                "previousScore": previous.score,
                "changePercentage": round_half_up(change, 2),
                "trend": "increasing" if change > 0 else "decreasing",
                "recordedAt": current.created_at,
            })

    titles = _theme_titles(session, [c["themeId"] for c in changes])
    for item in changes:
        item["title"] = titles.get(item["themeId"])
    changes.sort(key=lambda c: abs(c["changePercentage"]), reverse=True)
    return changes


def get_top_performing_themes(session: Session, limit: int = 10, days: int = ANALYSIS_WINDOW_DAYS) -> list[dict[str, Any]]:
    """Themes ranked by their average score in the window."""
    ranked = []
    for theme_id, rows in _window_rows_by_theme(session, days).items():
        scores = [row.score for row in rows]
        average = sum(scores) / len(scores)
        current = rows[0].score
        change = 0.0
        if len(rows) > 1 and rows[1].score > 0:
            change = (current - rows[1].score) / rows[1].score * 100
        ranked.append({
            "themeId": theme_id,
            "averageScore": round_half_up(average, 2),
            "currentScore": current,
            "trend": classify_change(change),
            "entries": len(rows),
        })

    ranked.sort(key=lambda r: r["averageScore"], reverse=True)
    ranked = ranked[:limit]
    titles = _theme_titles(session, [r["themeId"] for r in ranked])
    for item in ranked:
        item["title"] = titles.get(item["themeId"])
    return ranked


def cleanup_old_score_history(session: Session, retention_days: int = 365) -> int:
    cutoff = datetime.utcnow() - timedelta(days=retention_days)
    result = session.execute(delete(ScoreHistory).where(ScoreHistory.created_at < cutoff))
    session.commit()
    deleted = int(result.rowcount or 0)
    if deleted:
        log.info("[score-history] Removed %d snapshots older than %d days", deleted, retention_days)
    return deleted
