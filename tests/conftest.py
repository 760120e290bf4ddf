from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import Engine

from insigne_service.clients import Notifier, ObjectStorage, TextGenerator
from insigne_service.config import Settings
from insigne_service.errors import UpstreamFailure
from insigne_service.main import create_app
from insigne_service.storage.schema import metadata

ADMIN_KEY = "admin-secret"
RESULTS_URL_BASE = "https://insigne.test/results"

GENERATED_JSON = json.dumps(
    {
        "report_text": "  The house of the curious mind.  ",
        "motto_english": "Fortune favours the bold",
        "motto_latin": "Audentes fortuna iuvat",
    }
)


def build_settings(tmp_path: Path, **overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "database_url": f"sqlite:///{tmp_path / 'insigne.db'}",
        "admin_key": ADMIN_KEY,
        "cors_origins": "*",
        "auto_generate": False,
        "public_results_url_base": RESULTS_URL_BASE,
        "version": "0.0.0",
        "git_sha": "test",
    }
    values.update(overrides)
    return Settings(**values)


class FakeTextGenerator(TextGenerator):
    def __init__(self, output: str = GENERATED_JSON, error: Optional[Exception] = None) -> None:
        self.output = output
        self.error = error
        self.prompts: List[str] = []

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.output


class FakeObjectStorage(ObjectStorage):
    def __init__(self, existing: Optional[set] = None) -> None:
        self.existing = existing
        self.calls: List[Dict[str, Any]] = []

    async def create_signed_url(self, path: str, ttl_seconds: int) -> str:
        self.calls.append({"path": path, "ttl_seconds": ttl_seconds})
        if self.existing is not None and path not in self.existing:
            raise UpstreamFailure("Object not found", provider="storage", provider_status=400)
        return f"https://storage.test/{path}?expires_in={ttl_seconds}&n={len(self.calls)}"


class FakeNotifier(Notifier):
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error
        self.sent: List[Dict[str, str]] = []

    def send(self, *, to: str, subject: str, html: str) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append({"to": to, "subject": subject, "html": html})


def operator_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {ADMIN_KEY}"}


@pytest.fixture
def generator() -> FakeTextGenerator:
    return FakeTextGenerator()


@pytest.fixture
def storage() -> FakeObjectStorage:
    return FakeObjectStorage()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return build_settings(tmp_path)


@pytest.fixture
def app(
    settings: Settings,
    generator: FakeTextGenerator,
    storage: FakeObjectStorage,
    notifier: FakeNotifier,
) -> FastAPI:
    application = create_app(settings, text_generator=generator, object_storage=storage, notifier=notifier)
    metadata.create_all(application.state.engine)
    return application


@pytest.fixture
def engine(app: FastAPI) -> Engine:
    return app.state.engine


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)
