"""
Shared pytest fixtures: a fresh session store, a fake OCR vendor behind
httpx.MockTransport, and a FastAPI TestClient wired to both.
"""
import os

# Must be set before the package reads its configuration
os.environ.setdefault("MOCK_LATENCY_SECONDS", "0")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import httpx
import pytest
from fastapi.testclient import TestClient

from invoice_capture.api import app, get_ocr_client, get_store
from invoice_capture.extractor import OcrClient
from invoice_capture.store import SessionStore


class FakeVendor:
    """Stands in for the OCR vendor; records every request it receives."""

    def __init__(self):
        self.status_code = 200
        self.payload: object = {"message": "Success", "result": []}
        self.error: Exception | None = None
        self.requests: list[httpx.Request] = []

    def respond_with(self, *groups):
        """Answer with one result per group of (label, ocr_text) pairs."""
        self.payload = {
            "message": "Success",
            "result": [
                {"prediction": [{"label": label, "ocr_text": text} for label, text in group]}
                for group in groups
            ],
        }

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json=self.payload)


@pytest.fixture()
def fake_vendor():
    return FakeVendor()


@pytest.fixture()
def ocr_client(fake_vendor):
    return OcrClient(
        api_url="https://ocr.test/api",
        api_key="secret-key",
        model_id="model-123",
        timeout=5,
        transport=httpx.MockTransport(fake_vendor),
    )


@pytest.fixture()
def store():
    return SessionStore()


@pytest.fixture()
def client(store, ocr_client):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_ocr_client] = lambda: ocr_client
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
