from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy import Engine

from insigne_service.lifecycle import can_transition, is_at_or_past
from insigne_service.storage.db import (
    create_insigne_for_submission,
    find_insigne_by_submission,
    get_insigne,
    transition_status,
)


def count_rows(engine: Engine, table: str) -> int:
    with engine.connect() as conn:
        return conn.execute(sa.text(f"SELECT count(*) FROM {table}")).scalar_one()


def test_losing_writer_gets_winner_and_leaves_no_orphans(engine: Engine) -> None:
    winner, created = create_insigne_for_submission(
        engine, submission_id="sub_race", client_email=None, payload={"id": "sub_race"}
    )
    # Simulates a second request that missed the pre-check and raced to insert.
    loser, loser_created = create_insigne_for_submission(
        engine, submission_id="sub_race", client_email="late@example.com", payload={"id": "sub_race"}
    )

    assert created is True
    assert loser_created is False
    assert loser["id"] == winner["id"]
    assert find_insigne_by_submission(engine, "sub_race") == winner["id"]
    assert count_rows(engine, "insignes") == 1
    assert count_rows(engine, "answers") == 1


def test_access_tokens_are_unique_per_insigne(engine: Engine) -> None:
    first, _ = create_insigne_for_submission(engine, submission_id="a", client_email=None, payload={})
    second, _ = create_insigne_for_submission(engine, submission_id="b", client_email=None, payload={})

    assert first["access_token"] != second["access_token"]
    assert first["id"].startswith("ins_")


def test_transition_status_is_compare_and_set(engine: Engine) -> None:
    row, _ = create_insigne_for_submission(engine, submission_id="cas", client_email=None, payload={})

    claimed = transition_status(engine, insigne_id=row["id"], to_status="generating", from_statuses={"draft"})
    again = transition_status(engine, insigne_id=row["id"], to_status="generating", from_statuses={"draft"})

    assert claimed["status"] == "generating"
    assert again is None
    assert get_insigne(engine, row["id"])["access_token"] == row["access_token"]


def test_transition_status_unknown_insigne(engine: Engine) -> None:
    assert transition_status(engine, insigne_id="ins_nope", to_status="approved", from_statuses={"draft"}) is None


def test_lifecycle_ordering() -> None:
    assert can_transition("draft", "generating")
    assert not can_transition("awaiting_approval", "generating")
    assert can_transition("approved", "delivered")
    assert can_transition("awaiting_approval", "delivered")
    assert not can_transition("generating", "approved")
    assert is_at_or_past("delivered", "approved")
    assert not is_at_or_past("generating", "approved")
    assert not is_at_or_past("unknown", "draft")
