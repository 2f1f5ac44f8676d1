"""Tests for the FastAPI REST endpoints."""

from collections.abc import Iterator
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from conftest import make_dispatch, make_extraction, make_png_bytes
import dispatch_ocr.api.app as app_module
from dispatch_ocr.api.app import app
from dispatch_ocr.batch.orchestrator import BatchOrchestrator
from dispatch_ocr.errors import ExtractionError
from dispatch_ocr.matching.evaluator import MatchEvaluator
from dispatch_ocr.store.memory import InMemoryDispatchStore


@pytest.fixture
def client() -> TestClient:
    """Create a FastAPI test client."""
    return TestClient(app)


@pytest.fixture
def store() -> InMemoryDispatchStore:
    return InMemoryDispatchStore(
        [
            make_dispatch("d-1", "EZ1"),
            make_dispatch("d-2", "EZ2", payment_received=True),
            make_dispatch("d-3", "EZ3"),
        ]
    )


@pytest.fixture
def processor() -> MagicMock:
    return MagicMock()


@pytest.fixture(autouse=True)
def orchestrator_factory(
    store: InMemoryDispatchStore, processor: MagicMock
) -> Iterator[None]:
    """Bind new batches to the in-memory store and the mocked processor."""

    def _factory() -> BatchOrchestrator:
        return BatchOrchestrator(processor, MatchEvaluator(store))

    with patch.object(app_module, "_new_orchestrator", side_effect=_factory):
        yield
    app_module._batches.clear()


def _png(name: str) -> tuple[str, tuple[str, bytes, str]]:
    return ("files", (name, make_png_bytes(), "image/png"))


def _upload(client: TestClient, processor: MagicMock, extractions: list) -> dict:
    processor.extract.side_effect = extractions
    files = [_png(f"img{i}.png") for i in range(len(extractions))]
    response = client.post("/batches", files=files)
    assert response.status_code == 200
    return response.json()


class TestHealthEndpoint:
    """Tests for GET /health."""

    def test_health_check(self, client: TestClient) -> None:
        with patch(
            "dispatch_ocr.api.app.TesseractEngine.is_available", return_value=True
        ):
            response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["tesseract_available"] is True
        assert "version" in data


class TestCreateBatch:
    """Tests for POST /batches."""

    def test_mixed_outcomes(
        self, client: TestClient, processor: MagicMock, store: InMemoryDispatchStore
    ) -> None:
        data = _upload(
            client,
            processor,
            [
                make_extraction(tracking_id="EZ1"),
                make_extraction(tracking_id="EZ2"),
                make_extraction(tracking_id="JO404"),
                ExtractionError("Unreadable image"),
            ],
        )

        jobs = data["jobs"]
        assert [j["filename"] for j in jobs] == ["img0.png", "img1.png", "img2.png", "img3.png"]
        assert jobs[0]["result"]["status"] == "auto_applied"
        assert jobs[0]["result"]["dispatch"]["id"] == "d-1"
        assert jobs[0]["result"]["dispatch"]["payment_received"] is True
        assert jobs[1]["result"]["status"] == "needs_review"
        assert jobs[1]["result"]["match_confidence"] == "high"
        assert jobs[2]["result"]["status"] == "no_match"
        assert jobs[3]["state"] == "error"
        assert jobs[3]["error"] == "Unreadable image"

        summary = data["summary"]
        assert summary["total"] == 4
        assert summary["total_processed"] == 3
        assert summary["errors"] == 1
        assert summary["high_confidence_needs_review"] == 1
        assert store.get("d-1").payment_received is True

    def test_amount_serialized_as_number(
        self, client: TestClient, processor: MagicMock
    ) -> None:
        data = _upload(client, processor, [make_extraction(amount="1250.50")])
        assert data["jobs"][0]["result"]["extraction"]["amount"] == 1250.50

    def test_rejects_non_images(self, client: TestClient, processor: MagicMock) -> None:
        processor.extract.side_effect = [make_extraction(tracking_id="EZ1")]
        response = client.post(
            "/batches",
            files=[_png("ok.png"), ("files", ("notes.txt", b"hello", "text/plain"))],
        )

        assert response.status_code == 200
        data = response.json()
        assert len(data["jobs"]) == 1
        assert data["rejected"] == ["notes.txt: Must be a valid image file"]

    def test_all_rejected_is_bad_request(self, client: TestClient) -> None:
        response = client.post(
            "/batches", files=[("files", ("notes.txt", b"hello", "text/plain"))]
        )
        assert response.status_code == 400
        assert "valid image" in response.json()["detail"]

    def test_no_files(self, client: TestClient) -> None:
        response = client.post("/batches")
        assert response.status_code == 422


class TestBatchLifecycle:
    """Tests for reading and discarding batches."""

    def test_get_batch(self, client: TestClient, processor: MagicMock) -> None:
        batch_id = _upload(client, processor, [make_extraction(tracking_id="EZ1")])["batch_id"]

        response = client.get(f"/batches/{batch_id}")
        assert response.status_code == 200
        assert response.json()["batch_id"] == batch_id

    def test_unknown_batch(self, client: TestClient) -> None:
        assert client.get("/batches/nope").status_code == 404
        assert client.post("/batches/nope/confirm").status_code == 404

    def test_delete_batch(self, client: TestClient, processor: MagicMock) -> None:
        batch_id = _upload(client, processor, [make_extraction(tracking_id="EZ1")])["batch_id"]

        assert client.delete(f"/batches/{batch_id}").status_code == 204
        assert client.get(f"/batches/{batch_id}").status_code == 404

    def test_remove_job(self, client: TestClient, processor: MagicMock) -> None:
        data = _upload(
            client,
            processor,
            [make_extraction(tracking_id="EZ1"), make_extraction(tracking_id="EZ3")],
        )
        batch_id, job_id = data["batch_id"], data["jobs"][0]["job_id"]

        response = client.delete(f"/batches/{batch_id}/jobs/{job_id}")
        assert response.status_code == 200
        assert [j["filename"] for j in response.json()["jobs"]] == ["img1.png"]

        assert client.delete(f"/batches/{batch_id}/jobs/{job_id}").status_code == 404


class TestConfirm:
    """Tests for the confirmation endpoints."""

    def test_confirm_single_job(
        self, client: TestClient, processor: MagicMock, store: InMemoryDispatchStore
    ) -> None:
        data = _upload(client, processor, [make_extraction(tracking_id="EZ3", amount="900")])
        batch_id, job_id = data["batch_id"], data["jobs"][0]["job_id"]
        assert data["jobs"][0]["result"]["status"] == "needs_review"

        response = client.post(f"/batches/{batch_id}/jobs/{job_id}/confirm")

        assert response.status_code == 200
        assert response.json() == {"succeeded": [job_id], "failed": [], "success_count": 1}
        assert store.get("d-3").payment_received is True
        batch = client.get(f"/batches/{batch_id}").json()
        assert batch["jobs"][0]["result"]["status"] == "auto_applied"

    def test_confirm_not_confirmable(self, client: TestClient, processor: MagicMock) -> None:
        data = _upload(client, processor, [make_extraction(tracking_id="JO404")])
        batch_id, job_id = data["batch_id"], data["jobs"][0]["job_id"]

        response = client.post(f"/batches/{batch_id}/jobs/{job_id}/confirm")
        assert response.json()["failed"] == [job_id]

    def test_confirm_unknown_job(self, client: TestClient, processor: MagicMock) -> None:
        batch_id = _upload(client, processor, [make_extraction(tracking_id="EZ1")])["batch_id"]
        response = client.post(f"/batches/{batch_id}/jobs/nope/confirm")
        assert response.status_code == 404

    def test_confirm_listed_jobs(self, client: TestClient, processor: MagicMock) -> None:
        data = _upload(
            client,
            processor,
            [
                make_extraction(tracking_id="EZ3", amount="900"),
                make_extraction(tracking_id="JO404"),
            ],
        )
        batch_id = data["batch_id"]
        review_id, missing_id = (j["job_id"] for j in data["jobs"])

        response = client.post(
            f"/batches/{batch_id}/confirm",
            json={"job_ids": [review_id, missing_id, "nope"]},
        )

        body = response.json()
        assert body["succeeded"] == [review_id]
        assert body["failed"] == [missing_id, "nope"]
        assert body["success_count"] == 1

    def test_confirm_empty_selection(self, client: TestClient, processor: MagicMock) -> None:
        batch_id = _upload(client, processor, [make_extraction(tracking_id="EZ3")])["batch_id"]
        response = client.post(f"/batches/{batch_id}/confirm")
        assert response.json() == {"succeeded": [], "failed": [], "success_count": 0}

    def test_confirm_high_confidence(
        self, client: TestClient, processor: MagicMock, store: InMemoryDispatchStore
    ) -> None:
        data = _upload(
            client,
            processor,
            [
                make_extraction(tracking_id="EZ2"),
                make_extraction(tracking_id="EZ3", amount="900"),
            ],
        )
        batch_id = data["batch_id"]

        response = client.post(f"/batches/{batch_id}/confirm-high-confidence")

        assert response.json()["succeeded"] == [data["jobs"][0]["job_id"]]
        assert store.get("d-2").ocr_processed is True
        assert store.get("d-3").payment_received is False
