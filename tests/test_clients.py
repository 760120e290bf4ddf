from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List

import httpx
import pytest

import insigne_service.clients as clients
from insigne_service.clients import (
    OpenAITextGenerator,
    ResendNotifier,
    SupabaseObjectStorage,
    UnconfiguredTextGenerator,
    extract_output_text,
)
from insigne_service.errors import UpstreamFailure


class DummyResponse:
    def __init__(self, status_code: int, json_data: Any = None, text: str = "") -> None:
        self.status_code = status_code
        self._json_data = json_data
        self.text = text

    def json(self) -> Any:
        if self._json_data is None:
            raise ValueError("No JSON")
        return self._json_data


def fake_post(responses: List[Any], calls: List[Dict[str, Any]]):
    def post(url: str, **kwargs: Any) -> DummyResponse:
        calls.append({"url": url, **kwargs})
        response = responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    return post


def test_extract_output_text_shapes() -> None:
    assert extract_output_text({"output": [{"content": [{"text": "first"}]}]}) == "first"
    assert extract_output_text({"output": [], "output_text": "fallback"}) == "fallback"
    assert extract_output_text({"output": [{"content": []}]}) == ""
    assert extract_output_text(["unexpected"]) == ""


def test_openai_generator_posts_prompt(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: List[Dict[str, Any]] = []
    responses = [DummyResponse(200, json_data={"output": [{"content": [{"text": '{"report_text": "r"}'}]}]})]
    monkeypatch.setattr(clients.httpx, "post", fake_post(responses, calls))
    generator = OpenAITextGenerator(api_key="sk-test", model="gpt-test", timeout_seconds=12.0)

    text = generator.generate("Write about me")

    assert text == '{"report_text": "r"}'
    assert calls[0]["url"] == "https://api.openai.com/v1/responses"
    assert calls[0]["json"] == {"model": "gpt-test", "input": "Write about me"}
    assert calls[0]["headers"]["Authorization"] == "Bearer sk-test"
    assert calls[0]["timeout"] == 12.0


def test_openai_generator_non_success_raises_with_provider_text(monkeypatch: pytest.MonkeyPatch) -> None:
    body = '{"error": {"message": "Rate limit reached"}}'
    responses = [DummyResponse(429, json_data=json.loads(body), text=body)]
    monkeypatch.setattr(clients.httpx, "post", fake_post(responses, []))

    with pytest.raises(UpstreamFailure) as excinfo:
        OpenAITextGenerator(api_key="sk-test").generate("prompt")

    assert excinfo.value.message == "Rate limit reached"
    assert excinfo.value.details["provider_status_code"] == 429
    assert excinfo.value.details["provider_body"] == body


def test_openai_generator_timeout_is_upstream_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    responses: List[Any] = [httpx.ReadTimeout("too slow")]
    monkeypatch.setattr(clients.httpx, "post", fake_post(responses, []))

    with pytest.raises(UpstreamFailure) as excinfo:
        OpenAITextGenerator(api_key="sk-test").generate("prompt")

    assert excinfo.value.provider == "openai"


def test_unconfigured_generator_raises() -> None:
    with pytest.raises(UpstreamFailure):
        UnconfiguredTextGenerator().generate("prompt")


def test_resend_notifier_posts_email(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: List[Dict[str, Any]] = []
    monkeypatch.setattr(clients.httpx, "post", fake_post([DummyResponse(200, json_data={"id": "em_1"})], calls))
    notifier = ResendNotifier(api_key="re_test", from_email="house@insigne.test")

    notifier.send(to="owner@example.com", subject="Hello", html="<p>hi</p>")

    assert calls[0]["url"] == "https://api.resend.com/emails"
    assert calls[0]["json"]["from"] == "house@insigne.test"
    assert calls[0]["json"]["to"] == "owner@example.com"


def test_resend_notifier_failure_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    responses = [DummyResponse(422, json_data={"message": "Invalid `to` field"}, text="invalid")]
    monkeypatch.setattr(clients.httpx, "post", fake_post(responses, []))

    with pytest.raises(UpstreamFailure) as excinfo:
        ResendNotifier(api_key="re_test", from_email="a@b.c").send(to="x", subject="s", html="h")

    assert excinfo.value.message == "Invalid `to` field"
    assert excinfo.value.provider == "email"


def patch_async_client(monkeypatch: pytest.MonkeyPatch, handler) -> None:
    real_client = httpx.AsyncClient

    def factory(*args: Any, **kwargs: Any) -> httpx.AsyncClient:
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(clients.httpx, "AsyncClient", factory)


def test_supabase_storage_signs_path(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"signedURL": "/object/sign/vault/insignes/a/crest.png?token=abc"})

    patch_async_client(monkeypatch, handler)
    storage = SupabaseObjectStorage(base_url="https://proj.supabase.co/", service_role_key="srk", bucket="vault")

    url = asyncio.run(storage.create_signed_url("insignes/a/crest.png", 900))

    assert url == "https://proj.supabase.co/storage/v1/object/sign/vault/insignes/a/crest.png?token=abc"
    assert seen[0].url.path == "/storage/v1/object/sign/vault/insignes/a/crest.png"
    assert json.loads(seen[0].content) == {"expiresIn": 900}
    assert seen[0].headers["apikey"] == "srk"


def test_supabase_storage_missing_object(monkeypatch: pytest.MonkeyPatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"statusCode": "404", "error": "not_found", "message": "Object not found"})

    patch_async_client(monkeypatch, handler)
    storage = SupabaseObjectStorage(base_url="https://proj.supabase.co", service_role_key="srk", bucket="vault")

    with pytest.raises(UpstreamFailure) as excinfo:
        asyncio.run(storage.create_signed_url("missing.pdf", 60))

    assert excinfo.value.details["provider_status_code"] == 400


def test_resend_notifier_timeout_is_upstream_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    responses: List[Any] = [httpx.ConnectTimeout("no route")]
    monkeypatch.setattr(clients.httpx, "post", fake_post(responses, []))

    with pytest.raises(UpstreamFailure) as excinfo:
        ResendNotifier(api_key="re_test", from_email="a@b.c", timeout_seconds=5.0).send(to="x", subject="s", html="h")

    assert excinfo.value.message == "Email dispatch timed out"
    assert excinfo.value.provider == "email"


def test_supabase_storage_timeout_is_upstream_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("storage too slow", request=request)

    patch_async_client(monkeypatch, handler)
    storage = SupabaseObjectStorage(
        base_url="https://proj.supabase.co", service_role_key="srk", bucket="vault", timeout_seconds=2.0
    )

    with pytest.raises(UpstreamFailure) as excinfo:
        asyncio.run(storage.create_signed_url("insignes/a/crest.png", 60))

    assert excinfo.value.message == "Signed URL request timed out"
    assert excinfo.value.provider == "storage"
