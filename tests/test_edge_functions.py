import pytest
import requests
from sqlmodel import select

from theme_api.models.processing import ProcessingJob
from theme_api.services.edge_functions import (
    EdgeFunctionClient,
    EdgeFunctionError,
    merge_options,
    run_processing_operation,
)

EDGE_URL = "https://edge.test/functions/v1/process-trend-data"


def test_client_requires_base_url():
    with pytest.raises(EdgeFunctionError):
        EdgeFunctionClient(base_url="")


def test_invoke_sends_service_key(requests_mocker):
    requests_mocker.post(EDGE_URL, json={"processed": 3})
    client = EdgeFunctionClient(service_key="svc-key")
    assert client.invoke("process-trend-data", {"operation": "normalize"}) == {"processed": 3}

    sent = requests_mocker.request_history[-1]
    assert sent.headers["Authorization"] == "Bearer svc-key"
    assert sent.headers["apikey"] == "svc-key"
    assert sent.json() == {"operation": "normalize"}
    client.close()


@pytest.mark.parametrize("kwargs", [
    {"status_code": 502, "json": {"error": "upstream exploded"}},
    {"status_code": 200, "text": "not json"},
    {"exc": requests.ConnectionError("refused")},
])
def test_invoke_failures_raise(requests_mocker, kwargs):
    requests_mocker.post(EDGE_URL, **kwargs)
    with pytest.raises(EdgeFunctionError):
        EdgeFunctionClient().invoke("process-trend-data", {})


def test_merge_options_fills_defaults():
    assert merge_options({"batchSize": 10, "notifyUsers": None}) == {
        "batchSize": 10,
        "forceUpdate": False,
        "notifyUsers": True,
    }


def test_successful_run_records_completed_job(session, requests_mocker):
    requests_mocker.post(EDGE_URL, json={"updated": 12})
    result = run_processing_operation(session, "batch_update", {"themeIds": ["a"]}, {"batchSize": 5})
    assert result == {"updated": 12}

    job = session.exec(select(ProcessingJob)).one()
    assert job.job_type == "batch_update"
    assert job.status == "completed"
    assert job.input_data["options"]["batchSize"] == 5
    assert job.output_data == {"updated": 12}
    assert job.completed_at is not None


def test_failed_run_records_failed_job(session, requests_mocker):
    requests_mocker.post(EDGE_URL, status_code=500, json={"error": "boom"})
    with pytest.raises(EdgeFunctionError):
        run_processing_operation(session, "realtime_sync")

    job = session.exec(select(ProcessingJob)).one()
    assert job.status == "failed"
    assert "boom" in job.error_message


def test_unknown_operation_rejected(session):
    with pytest.raises(ValueError):
        run_processing_operation(session, "drop_tables")
