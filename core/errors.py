from __future__ import annotations


class VarakaError(Exception):
    """Base class for errors surfaced to the dashboard."""


class DataUnavailable(VarakaError):
    """The store answered but holds no records yet."""


class TransportError(VarakaError):
    """Network or backend failure while talking to the record store."""


class ImportFailure(VarakaError):
    """An uploaded spreadsheet could not be turned into records."""


class ExportFailure(VarakaError):
    """PDF or image generation failed; no file was written."""


def error_message(exc: BaseException) -> str:
    message = str(exc).strip()
    return message or type(exc).__name__
