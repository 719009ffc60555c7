from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


class VarakaFiltersModel(BaseModel):
    search: str = ""
    category: str = ""
    penalty_kind: Literal["", "para", "men"] = ""
    date_start: Optional[str] = None
    date_end: Optional[str] = None
    men_only: bool = False


class SortModel(BaseModel):
    field: Literal["sira_no", "tarih", "plaka_no", "isim", "kabahat", "ceza_miktari"]
    direction: Literal["asc", "desc"] = "asc"


class DetailsRequest(BaseModel):
    filters: VarakaFiltersModel = Field(default_factory=VarakaFiltersModel)
    sort: Optional[SortModel] = None


class StateResponse(BaseModel):
    status: Literal["loading", "error", "ready"]
    loading: bool
    error: Optional[str] = None
    error_type: Optional[str] = None
    record_count: int = 0
    fetched_at: Optional[str] = None


class UploadResponse(BaseModel):
    rows_read: int
    rows_imported: int
    rows_skipped: int
