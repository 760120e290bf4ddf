from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from urllib.parse import urlencode

from sqlalchemy import Engine

from insigne_service.clients import Notifier
from insigne_service.errors import NotFound, PreconditionFailed
from insigne_service.lifecycle import APPROVED, DELIVERED, TRANSITION_SOURCES, can_transition, is_at_or_past
from insigne_service.storage.db import get_insigne, transition_status

logger = logging.getLogger("insigne_service")

DELIVERY_SUBJECT = "Your Insigne has been forged"


@dataclass(frozen=True)
class TransitionOutcome:
    insigne_id: str
    status: str
    unchanged: bool = False


def _load(engine: Engine, insigne_id: str) -> dict:
    row = get_insigne(engine, insigne_id)
    if not row:
        raise NotFound("Insigne not found", details={"insigne_id": insigne_id})
    return row


def approve(engine: Engine, insigne_id: str) -> TransitionOutcome:
    row = _load(engine, insigne_id)
    if is_at_or_past(row["status"], APPROVED):
        return TransitionOutcome(insigne_id=insigne_id, status=row["status"], unchanged=True)
    if not can_transition(row["status"], APPROVED):
        raise PreconditionFailed(
            "Insigne report is not ready for approval",
            details={"insigne_id": insigne_id, "status": row["status"]},
        )
    updated = transition_status(
        engine,
        insigne_id=insigne_id,
        to_status=APPROVED,
        from_statuses=TRANSITION_SOURCES[APPROVED],
    )
    if not updated:
        # Lost a race with another transition; report where the record ended up.
        current = _load(engine, insigne_id)
        return TransitionOutcome(insigne_id=insigne_id, status=current["status"], unchanged=True)
    logger.info("insigne_approved insigne_id=%s", insigne_id)
    return TransitionOutcome(insigne_id=insigne_id, status=APPROVED)


def build_results_link(base_url: str, access_token: str) -> str:
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{urlencode({'token': access_token})}"


def build_delivery_html(link: str) -> str:
    href = html.escape(link, quote=True)
    return (
        '<div style="font-family:Arial,sans-serif;max-width:560px;margin:0 auto;line-height:1.5">'
        "<h2>Your Insigne has been forged</h2>"
        "<p>Your private dossier and Insigne are ready to view.</p>"
        f'<p><a href="{href}" style="display:inline-block;padding:12px 16px;background:#111;'
        'color:#fff;text-decoration:none;border-radius:10px">View your Insigne</a></p>'
        '<p style="color:#666;font-size:12px">This link is private. Keep it secure.</p>'
        "</div>"
    )


def deliver(engine: Engine, notifier: Notifier, insigne_id: str, *, results_url_base: str) -> TransitionOutcome:
    """Email the owner their private link, then mark the Insigne delivered.

    A failed dispatch raises and leaves the status untouched.
    """
    row = _load(engine, insigne_id)
    if row["status"] == DELIVERED:
        return TransitionOutcome(insigne_id=insigne_id, status=DELIVERED, unchanged=True)
    if not row.get("access_token") or not row.get("client_email"):
        raise PreconditionFailed(
            "Missing email/token",
            details={
                "insigne_id": insigne_id,
                "has_access_token": bool(row.get("access_token")),
                "has_client_email": bool(row.get("client_email")),
            },
        )
    if not can_transition(row["status"], DELIVERED):
        raise PreconditionFailed(
            "Insigne report is not ready for delivery",
            details={"insigne_id": insigne_id, "status": row["status"]},
        )
    if not results_url_base:
        raise PreconditionFailed("Public results URL is not configured")

    link = build_results_link(results_url_base, row["access_token"])
    notifier.send(to=row["client_email"], subject=DELIVERY_SUBJECT, html=build_delivery_html(link))

    updated = transition_status(
        engine,
        insigne_id=insigne_id,
        to_status=DELIVERED,
        from_statuses=TRANSITION_SOURCES[DELIVERED],
    )
    if not updated:
        current = _load(engine, insigne_id)
        logger.warning("insigne_delivery_status_conflict insigne_id=%s status=%s", insigne_id, current["status"])
        return TransitionOutcome(insigne_id=insigne_id, status=current["status"], unchanged=True)
    logger.info("insigne_delivered insigne_id=%s", insigne_id)
    return TransitionOutcome(insigne_id=insigne_id, status=DELIVERED)
