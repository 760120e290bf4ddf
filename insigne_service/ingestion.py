from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Engine

from insigne_service.errors import ValidationFailed
from insigne_service.normalization import DEFAULT_HIDDEN_FIELD_KEY, normalize_submission
from insigne_service.storage.db import create_insigne_for_submission, find_insigne_by_submission

logger = logging.getLogger("insigne_service")


@dataclass(frozen=True)
class IngestOutcome:
    insigne_id: str
    submission_id: str
    deduped: bool


def ingest_submission(
    engine: Engine,
    raw_payload: Any,
    *,
    hidden_field_key: str = DEFAULT_HIDDEN_FIELD_KEY,
    require_client_email: bool = False,
) -> IngestOutcome:
    """Create the Insigne for one webhook delivery, at most once per submission id.

    Redeliveries of a known submission return the existing Insigne with
    ``deduped=True`` and write nothing.
    """
    submission = normalize_submission(raw_payload, hidden_field_key=hidden_field_key)
    if not submission.submission_id:
        raise ValidationFailed("Missing submission id")
    if require_client_email and not submission.email:
        raise ValidationFailed("Missing client email", details={"submission_id": submission.submission_id})

    existing_id = find_insigne_by_submission(engine, submission.submission_id)
    if existing_id:
        logger.info(
            "submission_ingest_duplicate insigne_id=%s submission_id=%s",
            existing_id,
            submission.submission_id,
        )
        return IngestOutcome(insigne_id=existing_id, submission_id=submission.submission_id, deduped=True)

    insigne_row, created = create_insigne_for_submission(
        engine,
        submission_id=submission.submission_id,
        client_email=submission.email,
        payload=submission.payload,
    )
    if not created:
        logger.info(
            "submission_ingest_race_lost insigne_id=%s submission_id=%s",
            insigne_row["id"],
            submission.submission_id,
        )
        return IngestOutcome(insigne_id=insigne_row["id"], submission_id=submission.submission_id, deduped=True)

    logger.info(
        "submission_ingest_created insigne_id=%s submission_id=%s has_email=%s",
        insigne_row["id"],
        submission.submission_id,
        bool(submission.email),
    )
    return IngestOutcome(
        insigne_id=insigne_row["id"],
        submission_id=submission.submission_id,
        deduped=False,
    )
