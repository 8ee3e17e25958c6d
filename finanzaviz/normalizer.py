"""Turn uploaded files into request parts for the extraction service.

Spreadsheets lose their cell structure when sent as binary, so they are
flattened into a textual row dump; PDFs and images go inline as base64.
"""

import base64
import csv
import io
import json
import mimetypes
import zipfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePath
from typing import Any, Callable, Dict, List, Sequence

import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException
from pypdf import PdfReader
from pypdf.errors import PdfReadError
from xlrd import XLRDError
from xlrd.compdoc import CompDocError

from .errors import FileUnreadable


RequestPart = Dict[str, Any]


class FileKind(Enum):
    SPREADSHEET = "spreadsheet"
    DELIMITED = "delimited"
    DOCUMENT = "document"


SUFFIX_KINDS = {
    ".xlsx": FileKind.SPREADSHEET,
    ".xlsm": FileKind.SPREADSHEET,
    ".xls": FileKind.SPREADSHEET,
    ".csv": FileKind.DELIMITED,
}

CSV_ENCODINGS = ("utf-8-sig", "cp1252")

SPREADSHEET_ERRORS = (
    InvalidFileException,
    XLRDError,
    CompDocError,
    zipfile.BadZipFile,
    KeyError,
    IndexError,
    EOFError,
    OSError,
    ValueError,
)


@dataclass(frozen=True)
class UploadedFile:
    name: str
    content: bytes
    mime_type: str = ""

    @property
    def kind(self) -> FileKind:
        return classify_file(self.name)


def classify_file(name: str) -> FileKind:
    return SUFFIX_KINDS.get(PurePath(name).suffix.lower(), FileKind.DOCUMENT)


def normalize_file(uploaded: UploadedFile) -> RequestPart:
    if not uploaded.content:
        raise FileUnreadable(uploaded.name, "empty file")
    return _NORMALIZERS[uploaded.kind](uploaded)


def normalize_files(files: Sequence[UploadedFile], max_workers: int = 4) -> List[RequestPart]:
    """Normalize files concurrently; the result keeps the input order."""
    if len(files) <= 1 or max_workers <= 1:
        return [normalize_file(f) for f in files]

    with ThreadPoolExecutor(max_workers=min(max_workers, len(files))) as executor:
        futures = [executor.submit(normalize_file, f) for f in files]
        return [fut.result() for fut in futures]


def _normalize_spreadsheet(uploaded: UploadedFile) -> RequestPart:
    # pandas picks openpyxl for OOXML and xlrd for legacy BIFF workbooks.
    try:
        frames = pd.read_excel(io.BytesIO(uploaded.content), sheet_name=None, header=None)
    except SPREADSHEET_ERRORS as exc:
        raise FileUnreadable(uploaded.name, str(exc)) from exc

    sheets = [(name, _dump_frame(df)) for name, df in frames.items()]
    return {"text": _format_sheets(uploaded.name, sheets)}


def _normalize_delimited(uploaded: UploadedFile) -> RequestPart:
    df = _read_csv(uploaded)
    sheet_name = PurePath(uploaded.name).stem
    return {"text": _format_sheets(uploaded.name, [(sheet_name, _dump_frame(df))])}


def _normalize_document(uploaded: UploadedFile) -> RequestPart:
    mime_type = uploaded.mime_type or mimetypes.guess_type(uploaded.name)[0] or "application/octet-stream"
    if mime_type == "application/pdf":
        _check_pdf(uploaded)
    return {
        "inlineData": {
            "mimeType": mime_type,
            "data": base64.b64encode(uploaded.content).decode("ascii"),
        }
    }


_NORMALIZERS: Dict[FileKind, Callable[[UploadedFile], RequestPart]] = {
    FileKind.SPREADSHEET: _normalize_spreadsheet,
    FileKind.DELIMITED: _normalize_delimited,
    FileKind.DOCUMENT: _normalize_document,
}


def _dump_frame(df: pd.DataFrame) -> str:
    df = df.dropna(how="all")
    rows = df.astype(object).where(df.notna(), None).values.tolist()
    return json.dumps(rows, ensure_ascii=False, default=str)


def _format_sheets(filename: str, sheets: List[tuple]) -> str:
    body = "".join(f"\nSheet: {name}\n{dump}\n" for name, dump in sheets)
    return f"Conteúdo do Arquivo ({filename}):\n{body}"


def _read_csv(uploaded: UploadedFile) -> pd.DataFrame:
    last_error: Exception = ValueError("unsupported text encoding")
    for encoding in CSV_ENCODINGS:
        try:
            return pd.read_csv(
                io.BytesIO(uploaded.content),
                sep=None,
                engine="python",
                header=None,
                dtype=str,
                encoding=encoding,
            )
        except UnicodeDecodeError as exc:
            last_error = exc
        except (pd.errors.ParserError, pd.errors.EmptyDataError, csv.Error, ValueError) as exc:
            raise FileUnreadable(uploaded.name, str(exc)) from exc
    raise FileUnreadable(uploaded.name, str(last_error)) from last_error


def _check_pdf(uploaded: UploadedFile) -> None:
    try:
        reader = PdfReader(io.BytesIO(uploaded.content))
        page_count = len(reader.pages)
    except (PdfReadError, ValueError, KeyError, OSError) as exc:
        raise FileUnreadable(uploaded.name, str(exc)) from exc
    if page_count == 0:
        raise FileUnreadable(uploaded.name, "PDF has no pages")
