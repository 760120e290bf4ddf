from __future__ import annotations

from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from insigne_service.errors import UpstreamFailure


def _provider_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or error)
        if error:
            return str(error)
        if data.get("message"):
            return str(data["message"])
    return response.text


class TextGenerator:
    def generate(self, prompt: str) -> str:
        raise NotImplementedError


class UnconfiguredTextGenerator(TextGenerator):
    def generate(self, prompt: str) -> str:
        raise UpstreamFailure("Text generation is not configured", provider="openai")


class OpenAITextGenerator(TextGenerator):
    def __init__(
        self,
        *,
        api_key: str,
        model: str = "gpt-4.1-mini",
        base_url: str = "https://api.openai.com/v1",
        timeout_seconds: float = 30.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds

    def generate(self, prompt: str) -> str:
        url = f"{self._base_url}/responses"
        headers = {"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"}
        try:
            response = httpx.post(
                url,
                json={"model": self._model, "input": prompt},
                headers=headers,
                timeout=self._timeout_seconds,
            )
        except httpx.TimeoutException:
            raise UpstreamFailure("Text generation timed out", provider="openai")
        except httpx.RequestError as exc:
            raise UpstreamFailure(f"Text generation request failed: {exc}", provider="openai")
        if not 200 <= response.status_code < 300:
            raise UpstreamFailure(
                _provider_message(response),
                provider="openai",
                provider_status=response.status_code,
                body=response.text,
            )
        try:
            data = response.json()
        except ValueError:
            return response.text
        return extract_output_text(data)


def extract_output_text(data: Any) -> str:
    if not isinstance(data, dict):
        return ""
    output = data.get("output")
    if isinstance(output, list) and output and isinstance(output[0], dict):
        content = output[0].get("content")
        if isinstance(content, list) and content and isinstance(content[0], dict):
            text = content[0].get("text")
            if text:
                return str(text)
    return str(data.get("output_text") or "")


class ObjectStorage:
    async def create_signed_url(self, path: str, ttl_seconds: int) -> str:
        raise NotImplementedError


class UnconfiguredObjectStorage(ObjectStorage):
    async def create_signed_url(self, path: str, ttl_seconds: int) -> str:
        raise UpstreamFailure("Object storage is not configured", provider="storage")


class SupabaseObjectStorage(ObjectStorage):
    def __init__(
        self,
        *,
        base_url: str,
        service_role_key: str,
        bucket: str,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._service_role_key = service_role_key
        self._bucket = bucket
        self._timeout_seconds = timeout_seconds

    async def create_signed_url(self, path: str, ttl_seconds: int) -> str:
        object_path = quote(path.lstrip("/"))
        url = f"{self._base_url}/storage/v1/object/sign/{quote(self._bucket)}/{object_path}"
        headers = {
            "Authorization": f"Bearer {self._service_role_key}",
            "apikey": self._service_role_key,
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                response = await client.post(url, json={"expiresIn": ttl_seconds}, headers=headers)
        except httpx.TimeoutException:
            raise UpstreamFailure("Signed URL request timed out", provider="storage")
        except httpx.RequestError as exc:
            raise UpstreamFailure(f"Signed URL request failed: {exc}", provider="storage")
        if not 200 <= response.status_code < 300:
            raise UpstreamFailure(
                _provider_message(response),
                provider="storage",
                provider_status=response.status_code,
                body=response.text,
            )
        try:
            data = response.json()
        except ValueError:
            raise UpstreamFailure("Signed URL response was not JSON", provider="storage", body=response.text)
        signed_path = None
        if isinstance(data, dict):
            signed_path = data.get("signedURL") or data.get("signedUrl")
        if not isinstance(signed_path, str) or not signed_path:
            raise UpstreamFailure("Signed URL missing from response", provider="storage", body=response.text)
        if signed_path.startswith("http"):
            return signed_path
        return f"{self._base_url}/storage/v1{signed_path}"


class Notifier:
    def send(self, *, to: str, subject: str, html: str) -> None:
        raise NotImplementedError


class UnconfiguredNotifier(Notifier):
    def send(self, *, to: str, subject: str, html: str) -> None:
        raise UpstreamFailure("Email dispatch is not configured", provider="email")


class ResendNotifier(Notifier):
    def __init__(
        self,
        *,
        api_key: str,
        from_email: str,
        base_url: str = "https://api.resend.com",
        timeout_seconds: float = 30.0,
    ) -> None:
        self._api_key = api_key
        self._from_email = from_email
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds

    def send(self, *, to: str, subject: str, html: str) -> None:
        payload: Dict[str, Optional[str]] = {
            "from": self._from_email,
            "to": to,
            "subject": subject,
            "html": html,
        }
        headers = {"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"}
        try:
            response = httpx.post(
                f"{self._base_url}/emails",
                json=payload,
                headers=headers,
                timeout=self._timeout_seconds,
            )
        except httpx.TimeoutException:
            raise UpstreamFailure("Email dispatch timed out", provider="email")
        except httpx.RequestError as exc:
            raise UpstreamFailure(f"Email dispatch failed: {exc}", provider="email")
        if not 200 <= response.status_code < 300:
            raise UpstreamFailure(
                _provider_message(response),
                provider="email",
                provider_status=response.status_code,
                body=response.text,
            )
