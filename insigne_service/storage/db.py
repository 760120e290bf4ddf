from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import Connection, Engine, create_engine, select, text, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from insigne_service.lifecycle import DRAFT
from insigne_service.storage.schema import answers, assets, insignes, submission_lookup
from insigne_service.util.ids import new_access_token, new_answers_id, new_asset_id, new_insigne_id


def create_db_engine(database_url: str) -> Engine:
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(database_url, pool_pre_ping=True, future=True, connect_args=connect_args)


def check_db(engine: Engine) -> None:
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _upsert_insert(conn: Connection, table):
    if conn.dialect.name == "postgresql":
        return pg_insert(table)
    if conn.dialect.name == "sqlite":
        return sqlite_insert(table)
    raise SQLAlchemyError(f"Unsupported dialect for upsert: {conn.dialect.name}")


def _insert_insigne(conn: Connection, *, client_email: Optional[str]) -> Dict[str, Any]:
    now = _now()
    row = conn.execute(
        insignes.insert()
        .values(
            id=new_insigne_id(),
            status=DRAFT,
            access_token=new_access_token(),
            client_email=client_email,
            created_at=now,
            updated_at=now,
        )
        .returning(*insignes.c)
    ).mappings().first()
    if not row:
        raise SQLAlchemyError("Insigne insert failed")
    return dict(row)


def _insert_answers(conn: Connection, *, insigne_id: str, payload: Dict[str, Any]) -> None:
    conn.execute(
        answers.insert().values(
            id=new_answers_id(),
            insigne_id=insigne_id,
            payload=payload,
            created_at=_now(),
        )
    )


def upsert_lookup(conn: Connection, *, submission_id: str, insigne_id: str) -> Tuple[str, bool]:
    """Bind ``submission_id`` to ``insigne_id`` unless a binding already exists.

    Returns the insigne id that owns the submission and whether this call
    created the binding. The first writer wins; later writers get the
    existing id back.
    """
    stmt = (
        _upsert_insert(conn, submission_lookup)
        .values(submission_id=submission_id, insigne_id=insigne_id, created_at=_now())
        .on_conflict_do_nothing(index_elements=["submission_id"])
        .returning(submission_lookup.c.insigne_id)
    )
    inserted = conn.execute(stmt).first()
    if inserted:
        return inserted[0], True
    existing = conn.execute(
        select(submission_lookup.c.insigne_id).where(submission_lookup.c.submission_id == submission_id)
    ).first()
    if not existing:
        raise SQLAlchemyError("Submission lookup upsert failed to return a row")
    return existing[0], False


def find_insigne_by_submission(engine: Engine, submission_id: str) -> Optional[str]:
    with engine.begin() as conn:
        row = conn.execute(
            select(submission_lookup.c.insigne_id).where(submission_lookup.c.submission_id == submission_id)
        ).first()
        return row[0] if row else None


def create_insigne_for_submission(
    engine: Engine,
    *,
    submission_id: str,
    client_email: Optional[str],
    payload: Dict[str, Any],
) -> Tuple[Dict[str, Any], bool]:
    """Create an Insigne, its answers row and the dedup binding in one transaction.

    When another request has already bound ``submission_id`` the transaction
    is rolled back and the existing Insigne is returned with ``created=False``.
    """
    with engine.connect() as conn:
        trans = conn.begin()
        try:
            insigne_row = _insert_insigne(conn, client_email=client_email)
            _insert_answers(conn, insigne_id=insigne_row["id"], payload=payload)
            owner_id, created = upsert_lookup(conn, submission_id=submission_id, insigne_id=insigne_row["id"])
        except Exception:
            trans.rollback()
            raise
        if created:
            trans.commit()
            return insigne_row, True
        trans.rollback()
    existing = get_insigne(engine, owner_id)
    if not existing:
        raise SQLAlchemyError("Submission lookup points at a missing insigne")
    return existing, False


def get_insigne(engine: Engine, insigne_id: str) -> Optional[Dict[str, Any]]:
    with engine.begin() as conn:
        row = conn.execute(select(insignes).where(insignes.c.id == insigne_id)).mappings().first()
        return dict(row) if row else None


def get_insigne_by_token(engine: Engine, access_token: str) -> Optional[Dict[str, Any]]:
    if not access_token:
        return None
    with engine.begin() as conn:
        row = conn.execute(select(insignes).where(insignes.c.access_token == access_token)).mappings().first()
        return dict(row) if row else None


def get_latest_insigne(engine: Engine) -> Optional[Dict[str, Any]]:
    stmt = select(insignes).order_by(insignes.c.created_at.desc(), insignes.c.id.desc()).limit(1)
    with engine.begin() as conn:
        row = conn.execute(stmt).mappings().first()
        return dict(row) if row else None


def list_insignes_by_status(engine: Engine, status: str) -> List[Dict[str, Any]]:
    stmt = select(insignes).where(insignes.c.status == status).order_by(insignes.c.created_at.asc())
    with engine.begin() as conn:
        rows = conn.execute(stmt).mappings().all()
        return [dict(row) for row in rows]


def transition_status(
    engine: Engine,
    *,
    insigne_id: str,
    to_status: str,
    from_statuses: Iterable[str],
    values: Optional[Dict[str, Any]] = None,
) -> Optional[Dict[str, Any]]:
    """Compare-and-set the status of one Insigne.

    The update only applies when the current status is one of
    ``from_statuses``; otherwise nothing is written and ``None`` is returned.
    """
    update_values: Dict[str, Any] = dict(values or {})
    update_values["status"] = to_status
    update_values["updated_at"] = _now()
    stmt = (
        update(insignes)
        .where(insignes.c.id == insigne_id, insignes.c.status.in_(list(from_statuses)))
        .values(**update_values)
        .returning(*insignes.c)
    )
    with engine.begin() as conn:
        row = conn.execute(stmt).mappings().first()
        return dict(row) if row else None


def get_latest_answers(engine: Engine, insigne_id: str) -> Optional[Dict[str, Any]]:
    stmt = (
        select(answers)
        .where(answers.c.insigne_id == insigne_id)
        .order_by(answers.c.created_at.desc(), answers.c.id.desc())
        .limit(1)
    )
    with engine.begin() as conn:
        row = conn.execute(stmt).mappings().first()
        return dict(row) if row else None


def list_assets(engine: Engine, insigne_id: str) -> List[Dict[str, Any]]:
    stmt = select(assets).where(assets.c.insigne_id == insigne_id).order_by(assets.c.created_at.asc(), assets.c.id.asc())
    with engine.begin() as conn:
        rows = conn.execute(stmt).mappings().all()
        return [dict(row) for row in rows]


def insert_asset(
    engine: Engine,
    *,
    insigne_id: str,
    asset_type: Optional[str],
    storage_path: Optional[str],
) -> Dict[str, Any]:
    stmt = (
        assets.insert()
        .values(
            id=new_asset_id(),
            insigne_id=insigne_id,
            asset_type=asset_type,
            storage_path=storage_path,
            created_at=_now(),
        )
        .returning(*assets.c)
    )
    with engine.begin() as conn:
        row = conn.execute(stmt).mappings().first()
        if not row:
            raise SQLAlchemyError("Asset insert failed")
        return dict(row)
