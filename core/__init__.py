"""Core (UI-agnostic) varaka dashboard logic.

This package contains:
- record store access (SQLAlchemy -> pandas) and change polling
- the fetch coordinator that keeps the snapshot current
- filter normalization, filtering and table sorting
- aggregations and page compute functions (JSON-serializable payloads)
- chart helpers (Altair -> Vega-Lite spec dict / PNG)
- Excel import and PDF export
"""
