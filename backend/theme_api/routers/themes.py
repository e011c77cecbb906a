"""Theme catalogue routes plus the scoring, revenue and competitor analyses on top of it.

Reads are public. Writes and recalculations require a signed-in user. Fixed
paths (``/trending``, ``/batch-monetization-score``) are declared before the
``/{theme_id}`` routes so they are matched first.
"""
from datetime import datetime
from time import perf_counter
from typing import List, Literal, Optional
from uuid import UUID

import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from ..core import crud
from ..core.auth import get_current_user, get_optional_user
from ..core.database import get_session
from ..models.theme import Theme, ThemeCreate, ThemePublic
from ..models.user import User
from ..services import score_history, tier_service
from ..services.competitors import analyze_competitors, positioning_recommendations
from ..services.revenue import Timeframe, perform_revenue_analysis
from ..services.scoring import round_half_up
from ..services.scoring.monetization import (
    FACTOR_LABELS,
    MonetizationFactors,
    MonetizationWeights,
    calculate_batch_scores,
    calculate_breakdown,
    calculate_score,
    normalize_factors,
    recalculate_with_weights,
    score_theme,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/themes", tags=["Themes"])

DETAILED_ANALYSIS = "detailedAnalysis"

SortField = Literal["monetization_score", "market_size", "created_at", "updated_at", "title"]


class ThemeListResponse(BaseModel):
    data: List[ThemePublic]
    pagination: dict


class RecalculateRequest(BaseModel):
    weights: Optional[MonetizationWeights] = None
    saveToHistory: bool = True
    includeAnalysis: bool = False


class ManualScoreRequest(BaseModel):
    factors: MonetizationFactors
    weights: Optional[MonetizationWeights] = None


class BatchScoreRequest(BaseModel):
    themeIds: List[UUID] = Field(min_length=1, max_length=100)
    weights: Optional[MonetizationWeights] = None
    saveToHistory: bool = True
    updateDatabase: bool = True


class BatchReweightRequest(BaseModel):
    weights: MonetizationWeights
    limit: int = Field(default=100, ge=1, le=1000)
    saveToHistory: bool = True


def _db_failure(action: str, exc: Exception) -> HTTPException:
    logger.error("[themes] %s failed: %s", action, exc, exc_info=True)
    return HTTPException(status_code=500, detail=f"Failed to {action}")


def _get_theme_or_404(session: Session, theme_id: UUID) -> Theme:
    try:
        theme = crud.get_theme(session, theme_id)
    except SQLAlchemyError as e:
        raise _db_failure("fetch theme", e)
    if not theme:
        raise HTTPException(status_code=404, detail="Theme not found")
    return theme


def _weights(weights: Optional[MonetizationWeights]) -> Optional[dict]:
    return weights.as_partial() if weights else None


def _score_payload(theme: Theme, score: int, factors: dict, weights: Optional[dict] = None) -> dict:
    return {
        "themeId": theme.id,
        "score": score,
        "factors": factors,
        "breakdown": calculate_breakdown(factors, weights),
        "labels": FACTOR_LABELS,
        "updatedAt": theme.updated_at,
    }


def _check_range(low, high, name: str) -> None:
    if low is not None and high is not None and low > high:
        raise HTTPException(status_code=400, detail=f"min_{name} must not exceed max_{name}")


# --- Listing -------------------------------------------------------------------

@router.get("", response_model=ThemeListResponse)
def list_themes(
    category: Optional[str] = None,
    competition_level: Optional[Literal["low", "medium", "high"]] = None,
    technical_difficulty: Optional[Literal["beginner", "intermediate", "advanced"]] = None,
    min_monetization_score: Optional[int] = Query(default=None, ge=0, le=100),
    max_monetization_score: Optional[int] = Query(default=None, ge=0, le=100),
    min_market_size: Optional[int] = Query(default=None, ge=0),
    max_market_size: Optional[int] = Query(default=None, ge=0),
    search: Optional[str] = Query(default=None, max_length=200),
    sort_by: SortField = "monetization_score",
    sort_order: Literal["asc", "desc"] = "desc",
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    session: Session = Depends(get_session),
):
    _check_range(min_monetization_score, max_monetization_score, "monetization_score")
    _check_range(min_market_size, max_market_size, "market_size")
    try:
        rows, total = crud.list_themes(
            session,
            category=category,
            competition_level=competition_level,
            technical_difficulty=technical_difficulty,
            min_monetization_score=min_monetization_score,
            max_monetization_score=max_monetization_score,
            min_market_size=min_market_size,
            max_market_size=max_market_size,
            search=search.strip() if search else None,
            sort_by=sort_by,
            sort_order=sort_order,
            offset=(page - 1) * limit,
            limit=limit,
        )
    except SQLAlchemyError as e:
        raise _db_failure("list themes", e)
    return {
        "data": rows,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": (total + limit - 1) // limit,
        },
    }


@router.get("/trending", response_model=List[ThemePublic])
def trending_themes(
    limit: int = Query(default=10, ge=1, le=50),
    session: Session = Depends(get_session),
):
    try:
        return crud.get_trending_themes(session, limit)
    except SQLAlchemyError as e:
        raise _db_failure("fetch trending themes", e)


@router.post("", response_model=ThemePublic, status_code=201)
def create_theme(
    theme_in: ThemeCreate,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    try:
        theme = crud.create_theme(session, theme_in)
        score, factors = score_theme(theme)
        theme = crud.update_theme_score(session, theme, score, factors)
    except SQLAlchemyError as e:
        session.rollback()
        raise _db_failure("create theme", e)
    logger.info("[themes] Theme %s created by %s (score=%d)", theme.id, current_user.id, score)
    return theme


# --- Batch scoring -------------------------------------------------------------

@router.post("/batch-monetization-score")
def batch_score(
    req: BatchScoreRequest,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    started = perf_counter()
    weights = _weights(req.weights)
    requested = list(dict.fromkeys(req.themeIds))
    try:
        themes = crud.get_themes_by_ids(session, requested)
        if not themes:
            raise HTTPException(status_code=404, detail="No themes found")
        trend = crud.get_trend_data_for_themes(session, [t.id for t in themes])
    except SQLAlchemyError as e:
        raise _db_failure("load themes", e)

    results = []
    history_entries = []
    for theme, score, factors in calculate_batch_scores(themes, trend, weights):
        previous = theme.monetization_score
        try:
            if req.updateDatabase:
                crud.update_theme_score(session, theme, score, factors)
        except SQLAlchemyError as e:
            session.rollback()
            logger.warning("[themes] Batch update failed for theme %s: %s", theme.id, e)
            results.append({"themeId": theme.id, "success": False, "error": "Update failed"})
            continue
        if req.saveToHistory:
            history_entries.append({
                "theme_id": theme.id,
                "score": score,
                "factors": factors,
                "metadata": {"source": "batch", "previousScore": previous, "userId": str(current_user.id)},
            })
        results.append({
            "themeId": theme.id,
            "title": theme.title,
            "success": True,
            "score": score,
            "previousScore": previous,
            "factors": factors,
        })

    found = {t.id for t in themes}
    for theme_id in requested:
        if theme_id not in found:
            results.append({"themeId": theme_id, "success": False, "error": "Theme not found"})

    if history_entries:
        try:
            score_history.save_batch_score_history(session, history_entries)
        except SQLAlchemyError as e:
            session.rollback()
            logger.warning("[score-history] Batch history save failed: %s", e)

    scores = [r["score"] for r in results if r["success"]]
    return {
        "results": results,
        "summary": {
            "total": len(requested),
            "successful": len(scores),
            "failed": len(results) - len(scores),
            "averageScore": round_half_up(sum(scores) / len(scores), 2) if scores else 0,
            "processingTimeMs": round_half_up((perf_counter() - started) * 1000),
        },
    }


@router.put("/batch-monetization-score")
def batch_reweight(
    req: BatchReweightRequest,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    started = perf_counter()
    weights = _weights(req.weights)
    try:
        themes = crud.get_themes_with_factors(session, req.limit)
    except SQLAlchemyError as e:
        raise _db_failure("load themes", e)
    rescored = recalculate_with_weights(themes, weights)
    if not rescored:
        raise HTTPException(status_code=404, detail="No themes with stored factors")

    results = []
    try:
        for theme, score, factors in rescored:
            previous = theme.monetization_score
            crud.update_theme_score(session, theme, score, factors)
            results.append({"themeId": theme.id, "title": theme.title, "score": score, "previousScore": previous})
        if req.saveToHistory:
            score_history.save_batch_score_history(session, [
                {
                    "theme_id": theme.id,
                    "score": score,
                    "factors": factors,
                    "metadata": {"source": "reweight", "weights": weights, "userId": str(current_user.id)},
                }
                for theme, score, factors in rescored
            ])
    except SQLAlchemyError as e:
        session.rollback()
        raise _db_failure("update scores", e)

    scores = [r["score"] for r in results]
    return {
        "results": results,
        "summary": {
            "total": len(results),
            "averageScore": round_half_up(sum(scores) / len(scores), 2),
            "processingTimeMs": round_half_up((perf_counter() - started) * 1000),
        },
    }


@router.get("/batch-monetization-score")
def batch_analysis(
    operation: Literal["significant_changes", "top_performing"] = "significant_changes",
    thresholdPercentage: float = Query(default=10, ge=0),
    days: Optional[int] = Query(default=None, ge=1, le=365),
    limit: int = Query(default=10, ge=1, le=100),
    session: Session = Depends(get_session),
):
    try:
        if operation == "significant_changes":
            window = days or 7
            data = score_history.get_themes_with_significant_changes(session, thresholdPercentage, window)[:limit]
        else:
            window = days or 30
            data = score_history.get_top_performing_themes(session, limit, window)
    except SQLAlchemyError as e:
        raise _db_failure("analyze score history", e)
    return {"operation": operation, "days": window, "data": data, "timestamp": datetime.utcnow().isoformat()}


# --- Single theme --------------------------------------------------------------

@router.get("/{theme_id}")
def get_theme(
    theme_id: UUID,
    current_user: Optional[User] = Depends(get_optional_user),
    session: Session = Depends(get_session),
):
    theme = _get_theme_or_404(session, theme_id)

    usage = None
    if current_user:
        used = tier_service.get_current_usage(session, current_user.id, DETAILED_ANALYSIS)
        usage = tier_service.check_usage_limit(current_user.subscription_tier, "detailedAnalysisPerMonth", used)
        if not usage["allowed"]:
            raise HTTPException(status_code=403, detail="Monthly detailed analysis limit reached")

    try:
        trend = crud.get_trend_data(session, theme.id)
        competitors = crud.get_competitors(session, theme.id)
    except SQLAlchemyError as e:
        raise _db_failure("fetch theme details", e)

    # Charged only after a successful fetch
    if usage is not None:
        count = tier_service.consume_usage(session, current_user.id, DETAILED_ANALYSIS, usage["limit"])
        if count is None:
            raise HTTPException(status_code=403, detail="Monthly detailed analysis limit reached")
        if usage["limit"] != tier_service.UNLIMITED:
            usage["remaining"] = max(0, usage["limit"] - count)
    return {
        "theme": ThemePublic.model_validate(theme),
        "trendData": trend,
        "competitors": competitors,
        "usage": usage,
    }


@router.get("/{theme_id}/trend-stats")
def trend_stats(theme_id: UUID, session: Session = Depends(get_session)):
    theme = _get_theme_or_404(session, theme_id)
    try:
        records = crud.get_trend_data(session, theme.id)
    except SQLAlchemyError as e:
        raise _db_failure("fetch trend data", e)
    if not records:
        return {
            "totalRecords": 0,
            "latestUpdate": None,
            "sources": [],
            "averageGrowthRate": 0,
            "averageSearchVolume": 0,
        }
    return {
        "totalRecords": len(records),
        "latestUpdate": records[0].timestamp,
        "sources": sorted({r.source for r in records}),
        "averageGrowthRate": round_half_up(sum(r.growth_rate for r in records) / len(records), 2),
        "averageSearchVolume": round_half_up(sum(r.search_volume for r in records) / len(records)),
    }


@router.get("/{theme_id}/monetization-score")
def get_monetization_score(
    theme_id: UUID,
    includeAnalysis: bool = False,
    includeStatistics: bool = False,
    session: Session = Depends(get_session),
):
    theme = _get_theme_or_404(session, theme_id)
    try:
        if theme.monetization_factors:
            score, factors = theme.monetization_score, normalize_factors(theme.monetization_factors)
        else:
            score, factors = score_theme(theme, crud.get_trend_data(session, theme.id))
            theme = crud.update_theme_score(session, theme, score, factors)
            logger.info("[themes] Derived initial factors for theme %s (score=%d)", theme.id, score)
    except SQLAlchemyError as e:
        session.rollback()
        raise _db_failure("calculate monetization score", e)

    payload = _score_payload(theme, score, factors)
    if includeAnalysis:
        analysis = score_history.analyze_theme_score_trend(session, theme.id, score, factors)
        if analysis is not None:
            payload["analysis"] = analysis
    if includeStatistics:
        statistics = score_history.get_score_statistics(session, theme.id)
        if statistics is not None:
            payload["statistics"] = statistics
    return payload


@router.post("/{theme_id}/monetization-score")
def recalculate_monetization_score(
    theme_id: UUID,
    req: Optional[RecalculateRequest] = None,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    req = req or RecalculateRequest()
    theme = _get_theme_or_404(session, theme_id)
    weights = _weights(req.weights)
    previous = theme.monetization_score
    try:
        score, factors = score_theme(theme, crud.get_trend_data(session, theme.id), weights)
        # Compared against history as it stood before this recalculation
        analysis = (
            score_history.analyze_theme_score_trend(session, theme.id, score, factors)
            if req.includeAnalysis else None
        )
        if req.saveToHistory:
            score_history.save_score_history(session, theme.id, score, factors, {
                "source": "recalculate",
                "previousScore": previous,
                "weights": weights,
                "userId": str(current_user.id),
            })
        theme = crud.update_theme_score(session, theme, score, factors)
    except SQLAlchemyError as e:
        session.rollback()
        raise _db_failure("recalculate monetization score", e)

    payload = _score_payload(theme, score, factors, weights)
    payload["previousScore"] = previous
    if analysis is not None:
        payload["analysis"] = analysis
    return payload


@router.put("/{theme_id}/monetization-score")
def set_monetization_factors(
    theme_id: UUID,
    req: ManualScoreRequest,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    theme = _get_theme_or_404(session, theme_id)
    weights = _weights(req.weights)
    factors = normalize_factors(req.factors.model_dump())
    score = calculate_score(factors, weights)
    previous = theme.monetization_score
    try:
        score_history.save_score_history(session, theme.id, score, factors, {
            "source": "manual",
            "previousScore": previous,
            "weights": weights,
            "userId": str(current_user.id),
        })
        theme = crud.update_theme_score(session, theme, score, factors)
    except SQLAlchemyError as e:
        session.rollback()
        raise _db_failure("update monetization score", e)
    logger.info("[themes] Manual factors set on theme %s by %s (%d -> %d)", theme.id, current_user.id, previous, score)
    payload = _score_payload(theme, score, factors, weights)
    payload["previousScore"] = previous
    return payload


@router.delete("/{theme_id}/monetization-score")
def reset_monetization_score(
    theme_id: UUID,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    theme = _get_theme_or_404(session, theme_id)
    previous = theme.monetization_score
    try:
        score, factors = score_theme(theme, crud.get_trend_data(session, theme.id))
        theme = crud.update_theme_score(session, theme, score, factors)
    except SQLAlchemyError as e:
        session.rollback()
        raise _db_failure("reset monetization score", e)
    logger.info("[themes] Score reset on theme %s by %s (%d -> %d)", theme.id, current_user.id, previous, score)
    payload = _score_payload(theme, score, factors)
    payload["previousScore"] = previous
    return payload


# --- Revenue / competitors -----------------------------------------------------

@router.get("/{theme_id}/revenue-projection")
def revenue_projection(
    theme_id: UUID,
    timeframe: Timeframe = "month",
    includeGrowth: bool = False,
    months: int = Query(default=12, ge=1, le=60),
    session: Session = Depends(get_session),
):
    theme = _get_theme_or_404(session, theme_id)
    analysis = perform_revenue_analysis(theme, include_growth=includeGrowth, months=months, timeframe=timeframe)
    return {"themeId": theme.id, "title": theme.title, **analysis}


@router.get("/{theme_id}/competitors")
def theme_competitors(theme_id: UUID, session: Session = Depends(get_session)):
    theme = _get_theme_or_404(session, theme_id)
    try:
        competitors = crud.get_competitors(session, theme.id)
    except SQLAlchemyError as e:
        raise _db_failure("fetch competitors", e)
    insights = analyze_competitors(competitors)
    return {
        "themeId": theme.id,
        "competitors": competitors,
        "insights": insights,
        "recommendations": positioning_recommendations(insights),
    }
