from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlmodel import Session

from ..core import crud
from ..core.database import get_session
from ..services.edge_functions import (
    OPERATIONS,
    EdgeFunctionError,
    run_processing_operation,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/process-data", tags=["Processing"])


class ProcessingOptions(BaseModel):
    batchSize: int = Field(default=100, ge=1, le=1000)
    forceUpdate: bool = False
    notifyUsers: bool = True


class NormalizeData(BaseModel):
    records: List[dict] = Field(default_factory=list)


class BatchUpdateData(BaseModel):
    themeIds: Optional[List[str]] = None


class RealtimeSyncData(BaseModel):
    sources: Optional[List[str]] = None


class AnalyzeThemesData(BaseModel):
    themeIds: List[str] = Field(min_length=1)


class NormalizeRequest(BaseModel):
    operation: Literal["normalize"]
    data: NormalizeData = Field(default_factory=NormalizeData)
    options: ProcessingOptions = Field(default_factory=ProcessingOptions)


class BatchUpdateRequest(BaseModel):
    operation: Literal["batch_update"]
    data: BatchUpdateData = Field(default_factory=BatchUpdateData)
    options: ProcessingOptions = Field(default_factory=ProcessingOptions)


class RealtimeSyncRequest(BaseModel):
    operation: Literal["realtime_sync"]
    data: RealtimeSyncData = Field(default_factory=RealtimeSyncData)
    options: ProcessingOptions = Field(default_factory=ProcessingOptions)


class AnalyzeThemesRequest(BaseModel):
    operation: Literal["analyze_themes"]
    data: AnalyzeThemesData
    options: ProcessingOptions = Field(default_factory=ProcessingOptions)


ProcessDataRequest = Annotated[
    Union[NormalizeRequest, BatchUpdateRequest, RealtimeSyncRequest, AnalyzeThemesRequest],
    Field(discriminator="operation"),
]


@router.post("")
def process_data(req: ProcessDataRequest, session: Session = Depends(get_session)):
    try:
        result = run_processing_operation(
            session,
            req.operation,
            req.data.model_dump(exclude_none=True),
            req.options.model_dump(),
        )
    except EdgeFunctionError as e:
        logger.error("[process-data] operation=%s failed: %s", req.operation, e)
        raise HTTPException(status_code=500, detail="Processing failed")
    return {
        "success": True,
        "operation": req.operation,
        "result": result,
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.get("")
def processing_status(
    operation: str = Query(default="batch_update"),
    session: Session = Depends(get_session),
):
    if operation not in OPERATIONS:
        raise HTTPException(status_code=400, detail=f"Unknown operation '{operation}'")
    try:
        jobs = crud.recent_processing_jobs(session, operation, limit=10)
        last_update = crud.latest_theme_update(session)
    except Exception as e:
        logger.error("[process-data] status lookup failed: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch processing status")
    return {
        "operation": operation,
        "jobs": jobs,
        "lastUpdate": last_update,
        "timestamp": datetime.utcnow().isoformat(),
    }
