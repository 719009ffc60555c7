from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import asdict
import logging
import math
from typing import Literal, Optional

import numpy as np
import pandas as pd
from fastapi import FastAPI, File, Query, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from api.schemas import DetailsRequest, StateResponse, UploadResponse, VarakaFiltersModel
from core.calculations import compute_summary
from core.config import Settings, configure_logging, load_settings
from core.data import CoordinatorState, VarakaCoordinator, VarakaSnapshot, prepare_context
from core.errors import DataUnavailable, ExportFailure, ImportFailure, TransportError, error_message
from core.export import build_dashboard_report, build_table_pdf
from core.filters import VarakaFilters, category_options, normalize_filters, parse_sort, sort_records
from core.importer import import_excel
from core.metrics_details import compute_details
from core.metrics_overview import compute_overview
from core.store import RecordStore, SqlRecordStore


logger = logging.getLogger(__name__)

STATUS_BY_ERROR = {
    DataUnavailable: 404,
    TransportError: 502,
    ImportFailure: 400,
    ExportFailure: 500,
}


def _json(data: object, status_code: int = 200) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        ),
    )


def _failure(name: str, exc: Exception) -> JSONResponse:
    status = next((code for cls, code in STATUS_BY_ERROR.items() if isinstance(exc, cls)), 500)
    if status >= 500:
        logger.exception("%s failed", name)
    else:
        logger.info("%s: %s", name, error_message(exc))
    return JSONResponse(status_code=status, content={"error": error_message(exc), "type": type(exc).__name__})


def _coordinator(request: Request) -> VarakaCoordinator:
    return request.app.state.coordinator


def _snapshot_of(state: CoordinatorState) -> VarakaSnapshot:
    """Published data, or the error that stands in its place."""
    if state.data is not None:
        return state.data
    if state.error_type == DataUnavailable.__name__:
        raise DataUnavailable(state.error or "")
    if state.error is not None:
        raise TransportError(state.error)
    raise TransportError("Veriler henüz yüklenmedi.")


def _snapshot(request: Request) -> VarakaSnapshot:
    return _snapshot_of(_coordinator(request).state)


def _filters(model: Optional[VarakaFiltersModel]) -> VarakaFilters:
    return normalize_filters(model.model_dump() if model is not None else None)


def _filtered_view(request: Request, body: DetailsRequest) -> pd.DataFrame:
    ctx = prepare_context(_filters(body.filters), _snapshot(request))
    sort = parse_sort(body.sort.field, body.sort.direction) if body.sort is not None else None
    return sort_records(ctx["filtered_records"], sort)


def create_app(store: Optional[RecordStore] = None, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        record_store = store
        if record_store is None:
            sql_store = SqlRecordStore.from_settings(settings)
            sql_store.ensure_table()
            record_store = sql_store
        coordinator = VarakaCoordinator(record_store, debounce_seconds=settings.debounce_seconds)
        app.state.store = record_store
        app.state.coordinator = coordinator
        coordinator.start()
        try:
            yield
        finally:
            coordinator.close()

    app = FastAPI(title="Varaka Dashboard API", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/state")
    def state(request: Request):
        current = _coordinator(request).state
        data = current.data
        return _json(
            StateResponse(
                status=current.status,
                loading=current.loading,
                error=current.error,
                error_type=current.error_type,
                record_count=data.summary.count if data is not None else 0,
                fetched_at=data.fetched_at.isoformat() if data is not None else None,
            ).model_dump()
        )

    @app.get("/meta/categories")
    def meta_categories(request: Request):
        try:
            return _json({"categories": category_options(_snapshot(request).records)})
        except Exception as exc:
            return _failure("meta_categories", exc)

    @app.post("/overview")
    def overview(request: Request):
        try:
            ctx = prepare_context(None, _snapshot(request))
            return _json(compute_overview(ctx))
        except Exception as exc:
            return _failure("overview", exc)

    @app.post("/details")
    def details(request: Request, body: DetailsRequest):
        try:
            f = _filters(body.filters)
            ctx = prepare_context(f, _snapshot(request))
            sort = parse_sort(body.sort.field, body.sort.direction) if body.sort is not None else None
            return _json(compute_details(f, ctx, sort=sort))
        except Exception as exc:
            return _failure("details", exc)

    @app.post("/refetch")
    def refetch(request: Request):
        try:
            snapshot = _snapshot_of(_coordinator(request).refetch())
            return _json({"status": "ready", "record_count": snapshot.summary.count})
        except Exception as exc:
            return _failure("refetch", exc)

    @app.post("/upload")
    def upload(request: Request, file: UploadFile = File(...), replace: bool = Query(default=False)):
        try:
            name = (file.filename or "").lower()
            if not name.endswith((".xlsx", ".xlsm")):
                raise ImportFailure("Yalnızca .xlsx dosyaları yüklenebilir.")
            result = import_excel(file.file.read(), request.app.state.store, replace=replace)
            _coordinator(request).refetch()
            return _json(UploadResponse(**asdict(result)).model_dump())
        except Exception as exc:
            return _failure("upload", exc)

    @app.post("/export/pdf")
    def export_pdf(
        request: Request,
        body: DetailsRequest,
        kind: Literal["table", "dashboard"] = Query(default="table"),
        charts: bool = Query(default=False),
    ):
        try:
            if kind == "dashboard":
                pdf = build_dashboard_report(_snapshot(request), with_charts=charts)
                filename = "varakalar-dashboard.pdf"
            else:
                view = _filtered_view(request, body)
                active = _filters(body.filters).as_dict().items()
                filter_text = ", ".join(f"{k}={v}" for k, v in active if v not in (None, "", False))
                pdf = build_table_pdf(view, compute_summary(view), filter_text=filter_text)
                filename = "varakalar.pdf"
            return Response(
                content=pdf,
                media_type="application/pdf",
                headers={"Content-Disposition": f"attachment; filename={filename}"},
            )
        except Exception as exc:
            return _failure("export_pdf", exc)

    @app.post("/export/csv")
    def export_csv(request: Request, body: DetailsRequest):
        try:
            view = _filtered_view(request, body)
            csv_bytes = view.to_csv(index=False).encode("utf-8-sig")
            return Response(
                content=csv_bytes,
                media_type="text/csv",
                headers={"Content-Disposition": "attachment; filename=varakalar.csv"},
            )
        except Exception as exc:
            return _failure("export_csv", exc)

    return app


app = create_app()
