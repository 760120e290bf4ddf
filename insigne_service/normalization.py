"""Submission payload normalisation.

Webhook senders deliver the same logical submission in several shapes. The
submission id is found by walking a fixed, ordered list of probes; the first
probe that yields a non-empty string wins:

1. ``submission.id``
2. ``data.submissionId``
3. ``data.responseId``
4. ``data.id``
5. ``submissionId`` (top level)
6. ``submission_id`` (top level)
7. ``id`` (top level)
8. hidden field in ``data.fields`` whose key/name/label equals the hidden key
9. hidden field in top-level ``fields`` whose key/name/label equals the hidden key

Every probe is a total function: it returns ``None`` on any shape mismatch
and never raises.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

DEFAULT_HIDDEN_FIELD_KEY = "submission_id"

Probe = Callable[[Dict[str, Any]], Optional[str]]


@dataclass(frozen=True)
class NormalizedSubmission:
    submission_id: Optional[str]
    email: Optional[str]
    payload: Dict[str, Any]


def coerce_payload(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            return {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except (ValueError, RecursionError):
            return {}
        # Some senders double-encode the body.
        if isinstance(raw, str):
            return coerce_payload(raw)
    if isinstance(raw, dict):
        return raw
    return {}


def _non_empty_string(value: Any) -> Optional[str]:
    if isinstance(value, str):
        stripped = value.strip()
        if stripped:
            return stripped
    return None


def _dig(payload: Dict[str, Any], path: Tuple[str, ...]) -> Any:
    current: Any = payload
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def path_probe(*path: str) -> Probe:
    def probe(payload: Dict[str, Any]) -> Optional[str]:
        return _non_empty_string(_dig(payload, path))

    probe.__name__ = "probe_" + "_".join(path)
    return probe


def _field_entries(payload: Dict[str, Any], path: Tuple[str, ...]) -> List[Dict[str, Any]]:
    fields = _dig(payload, path)
    if not isinstance(fields, list):
        return []
    return [entry for entry in fields if isinstance(entry, dict)]


def hidden_field_probe(*path: str, field_key: str = DEFAULT_HIDDEN_FIELD_KEY) -> Probe:
    wanted = field_key.strip().lower()

    def probe(payload: Dict[str, Any]) -> Optional[str]:
        for entry in _field_entries(payload, path):
            for attr in ("key", "name", "label"):
                name = entry.get(attr)
                if isinstance(name, str) and name.strip().lower() == wanted:
                    value = _non_empty_string(entry.get("value"))
                    if value:
                        return value
        return None

    probe.__name__ = "probe_hidden_" + "_".join(path)
    return probe


def submission_id_probes(hidden_field_key: str = DEFAULT_HIDDEN_FIELD_KEY) -> List[Probe]:
    return [
        path_probe("submission", "id"),
        path_probe("data", "submissionId"),
        path_probe("data", "responseId"),
        path_probe("data", "id"),
        path_probe("submissionId"),
        path_probe("submission_id"),
        path_probe("id"),
        hidden_field_probe("data", "fields", field_key=hidden_field_key),
        hidden_field_probe("fields", field_key=hidden_field_key),
    ]


def extract_submission_id(payload: Dict[str, Any], probes: Iterable[Probe]) -> Optional[str]:
    for probe in probes:
        value = probe(payload)
        if value:
            return value
    return None


def _is_email_entry(entry: Dict[str, Any]) -> bool:
    field_type = entry.get("type")
    if isinstance(field_type, str) and "email" in field_type.lower():
        return True
    label = entry.get("label")
    return isinstance(label, str) and "email" in label.lower()


def extract_email(payload: Dict[str, Any]) -> Optional[str]:
    for path in (("data", "fields"), ("fields",)):
        for entry in _field_entries(payload, path):
            if not _is_email_entry(entry):
                continue
            value = _non_empty_string(entry.get("value"))
            if value and "@" in value:
                return value
    return None


def normalize_submission(raw: Any, *, hidden_field_key: str = DEFAULT_HIDDEN_FIELD_KEY) -> NormalizedSubmission:
    payload = coerce_payload(raw)
    return NormalizedSubmission(
        submission_id=extract_submission_id(payload, submission_id_probes(hidden_field_key)),
        email=extract_email(payload),
        payload=payload,
    )
