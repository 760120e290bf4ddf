from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel


class AssetLink(BaseModel):
    asset_id: str
    asset_type: Optional[str] = None
    storage_path: Optional[str] = None
    signed_url: Optional[str] = None
    error: Optional[str] = None


class IngestResponse(BaseModel):
    ok: bool = True
    insigne_id: str
    submission_id: str
    deduped: Optional[bool] = None


class LookupResponse(BaseModel):
    ok: bool = True
    insigne_id: str
    submission_id: str


class GenerateResponse(BaseModel):
    ok: bool = True
    insigne_id: str
    status: str
    skipped: Optional[bool] = None
    structured: Optional[bool] = None


class TransitionResponse(BaseModel):
    ok: bool = True
    insigne_id: str
    status: str
    unchanged: Optional[bool] = None


class InsigneByTokenResponse(BaseModel):
    ok: bool = True
    insigne_id: str
    status: str
    report_text: Optional[str] = None
    motto_english: Optional[str] = None
    motto_latin: Optional[str] = None
    assets: List[AssetLink]


class LatestInsigneResponse(BaseModel):
    ok: bool = True
    insigne_id: str
    status: str
    motto_latin: Optional[str] = None
    report_text: Optional[str] = None


class InsigneDetailResponse(BaseModel):
    ok: bool = True
    insigne_id: str
    status: str
    client_email: Optional[str] = None
    report_text: Optional[str] = None
    motto_english: Optional[str] = None
    motto_latin: Optional[str] = None
    created_at: Optional[str] = None
    assets: List[AssetLink]


class QueueItem(BaseModel):
    insigne_id: str
    status: str
    client_email: Optional[str] = None
    motto_latin: Optional[str] = None
    created_at: Optional[str] = None


class QueueResponse(BaseModel):
    ok: bool = True
    items: List[QueueItem]
