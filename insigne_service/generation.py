"""Report generation for a single Insigne.

``generate_report`` claims the record with a compare-and-set on ``status``
(``draft`` -> ``generating``), asks the text generator for a JSON document and
stores the result as ``awaiting_approval``. Output that does not decode into
the expected object is kept verbatim as the report text with empty mottoes.
A failing generator call propagates to the caller and leaves the record in
``generating`` so it can be retried with ``retry=True``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import BaseModel, ValidationError
from sqlalchemy import Engine

from insigne_service.clients import TextGenerator
from insigne_service.errors import NotFound
from insigne_service.lifecycle import AWAITING_APPROVAL, DRAFT, GENERATING
from insigne_service.storage.db import get_insigne, get_latest_answers, transition_status
from insigne_service.util.canonical import truncated_json

logger = logging.getLogger("insigne_service")

DEFAULT_INPUT_MAX_CHARS = 12000

PROMPT_TEMPLATE = """You are "Insigne", a luxury heraldic house. Write:
1) A premium, intimate 1-2 page report in story form describing the person based on their questionnaire answers. Make it feel like a private dossier: confident, discreet, accurate.
2) A motto in English (short, powerful).
3) The motto translated into Latin (classical style, not machine-translation awkwardness).

Return STRICT JSON:
{{
  "report_text": "...",
  "motto_english": "...",
  "motto_latin": "..."
}}

Here is the questionnaire payload JSON:
{payload}
"""


@dataclass(frozen=True)
class GeneratedContent:
    report_text: str
    motto_english: str
    motto_latin: str
    structured: bool


@dataclass(frozen=True)
class GenerationOutcome:
    insigne_id: str
    status: str
    skipped: bool = False
    structured: Optional[bool] = None


def build_prompt(payload: Any, *, max_chars: int = DEFAULT_INPUT_MAX_CHARS) -> str:
    return PROMPT_TEMPLATE.format(payload=truncated_json(payload, max_chars))


class GeneratedReport(BaseModel):
    report_text: str
    motto_english: str
    motto_latin: str


def _fallback(raw: str) -> GeneratedContent:
    return GeneratedContent(report_text=raw, motto_english="", motto_latin="", structured=False)


def parse_generation_output(raw: str) -> GeneratedContent:
    try:
        report = GeneratedReport.model_validate_json(raw)
    except (ValidationError, ValueError, RecursionError):
        return _fallback(raw)
    report_text = report.report_text.strip()
    if not report_text:
        return _fallback(raw)
    return GeneratedContent(
        report_text=report_text,
        motto_english=report.motto_english.strip(),
        motto_latin=report.motto_latin.strip(),
        structured=True,
    )


def generate_report(
    engine: Engine,
    generator: TextGenerator,
    insigne_id: str,
    *,
    retry: bool = False,
    input_max_chars: int = DEFAULT_INPUT_MAX_CHARS,
) -> GenerationOutcome:
    insigne_row = get_insigne(engine, insigne_id)
    if not insigne_row:
        raise NotFound("Insigne not found", details={"insigne_id": insigne_id})
    answers_row = get_latest_answers(engine, insigne_id)
    if not answers_row:
        raise NotFound("No answers found for insigne", details={"insigne_id": insigne_id})

    claim_from = {DRAFT, GENERATING} if retry else {DRAFT}
    claimed = transition_status(engine, insigne_id=insigne_id, to_status=GENERATING, from_statuses=claim_from)
    if not claimed:
        current = get_insigne(engine, insigne_id) or insigne_row
        logger.info(
            "generation_skipped insigne_id=%s status=%s retry=%s",
            insigne_id,
            current["status"],
            retry,
        )
        return GenerationOutcome(insigne_id=insigne_id, status=current["status"], skipped=True)

    logger.info("generation_started insigne_id=%s retry=%s", insigne_id, retry)
    prompt = build_prompt(answers_row["payload"], max_chars=input_max_chars)
    raw_output = generator.generate(prompt)
    content = parse_generation_output(raw_output)
    if not content.structured:
        logger.warning("generation_output_unstructured insigne_id=%s chars=%s", insigne_id, len(raw_output))

    values: Dict[str, Any] = {
        "report_text": content.report_text,
        "motto_english": content.motto_english,
        "motto_latin": content.motto_latin,
    }
    stored = transition_status(
        engine,
        insigne_id=insigne_id,
        to_status=AWAITING_APPROVAL,
        from_statuses={GENERATING},
        values=values,
    )
    if not stored:
        current = get_insigne(engine, insigne_id) or insigne_row
        logger.warning(
            "generation_result_discarded insigne_id=%s status=%s",
            insigne_id,
            current["status"],
        )
        return GenerationOutcome(insigne_id=insigne_id, status=current["status"], skipped=True)

    logger.info(
        "generation_completed insigne_id=%s structured=%s",
        insigne_id,
        content.structured,
    )
    return GenerationOutcome(insigne_id=insigne_id, status=AWAITING_APPROVAL, structured=content.structured)


def run_generation_in_background(
    engine: Engine,
    generator: TextGenerator,
    insigne_id: str,
    *,
    input_max_chars: int = DEFAULT_INPUT_MAX_CHARS,
) -> None:
    """Fire-and-forget entry point scheduled after ingestion responds.

    Nothing is returned to the webhook sender; failures are logged and dropped.
    """
    try:
        generate_report(engine, generator, insigne_id, input_max_chars=input_max_chars)
    except Exception:
        logger.exception("generation_background_failed insigne_id=%s", insigne_id)
