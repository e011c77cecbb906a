"""Client for the hosted edge-function runtime and the job bookkeeping around it.

``run_processing_operation`` is shared by the /api/process-data route and the
scheduler: it records a ProcessingJob, invokes ``process-trend-data`` and
marks the job completed or failed.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from sqlmodel import Session

from theme_api.core.config import settings
from theme_api.models.processing import JobStatus, ProcessingJob

log = logging.getLogger(__name__)

PROCESS_TREND_DATA = "process-trend-data"
OPERATIONS = ("normalize", "batch_update", "realtime_sync", "analyze_themes")
DEFAULT_OPTIONS: Dict[str, Any] = {
    "batchSize": 100,
    "forceUpdate": False,
    "notifyUsers": True,
}


class EdgeFunctionError(Exception):
    """Raised when an edge function cannot be reached or returns an error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class EdgeFunctionClient:
    """Thin wrapper over ``POST {SUPABASE_URL}/functions/v1/<name>``."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        service_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url if base_url is not None else settings.SUPABASE_URL or "").rstrip("/")
        self.service_key = service_key if service_key is not None else settings.SUPABASE_SERVICE_ROLE_KEY
        self.timeout = timeout or settings.EDGE_FUNCTION_TIMEOUT_SECONDS
        if not self.base_url:
            raise EdgeFunctionError("SUPABASE_URL not configured")
        self._session: Optional[requests.Session] = None

    def _get_session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
            adapter = HTTPAdapter(pool_connections=4, pool_maxsize=8)
            self._session.mount("https://", adapter)
            self._session.mount("http://", adapter)
            headers = {"Content-Type": "application/json"}
            if self.service_key:
                headers["Authorization"] = f"Bearer {self.service_key}"
                headers["apikey"] = self.service_key
            self._session.headers.update(headers)
        return self._session

    def invoke(self, name: str, body: Dict[str, Any]) -> Any:
        """Invoke a function and return its decoded JSON body.

        Raises:
            EdgeFunctionError: on transport errors, non-2xx responses or non-JSON bodies
        """
        url = f"{self.base_url}/functions/v1/{name}"
        try:
            resp = self._get_session().post(url, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            log.error("[edge] request_failed function=%s error=%s", name, e)
            raise EdgeFunctionError(f"Request failed: {e}") from e

        log.info("[edge] invoke function=%s status=%d", name, resp.status_code)
        if resp.status_code >= 400:
            try:
                payload = resp.json()
                message = payload.get("error") or payload.get("message") or resp.text
            except ValueError:
                message = resp.text
            raise EdgeFunctionError(f"Function error {resp.status_code}: {message}", resp.status_code)

        try:
            return resp.json()
        except ValueError as e:
            raise EdgeFunctionError("Function returned a non-JSON body") from e

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None


def merge_options(options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    merged = dict(DEFAULT_OPTIONS)
    merged.update({k: v for k, v in (options or {}).items() if v is not None})
    return merged


def run_processing_operation(
    session: Session,
    operation: str,
    data: Optional[Dict[str, Any]] = None,
    options: Optional[Dict[str, Any]] = None,
    client: Optional[EdgeFunctionClient] = None,
) -> Any:
    """Run one processing operation through the edge function, recording a job row.

    Returns the function's result. Re-raises EdgeFunctionError after the job has
    been marked failed.
    """
    if operation not in OPERATIONS:
        raise ValueError(f"Unknown operation '{operation}'")

    body = {"operation": operation, "data": data or {}, "options": merge_options(options)}
    job = ProcessingJob(
        job_type=operation,
        status=JobStatus.RUNNING.value,
        input_data=body,
        started_at=datetime.utcnow(),
    )
    session.add(job)
    session.commit()
    session.refresh(job)
    log.info("[process-data] job %s started operation=%s", job.id, operation)

    try:
        result = (client or EdgeFunctionClient()).invoke(PROCESS_TREND_DATA, body)
    except EdgeFunctionError as e:
        job.status = JobStatus.FAILED.value
        job.error_message = str(e)
        job.completed_at = datetime.utcnow()
        session.add(job)
        session.commit()
        log.error("[process-data] job %s failed: %s", job.id, e)
        raise

    job.status = JobStatus.COMPLETED.value
    job.output_data = result if isinstance(result, dict) else {"result": result}
    job.completed_at = datetime.utcnow()
    session.add(job)
    session.commit()
    log.info("[process-data] job %s completed", job.id)
    return result
