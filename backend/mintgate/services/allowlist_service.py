# Overview: Service-layer operations for allowlists; ingests uploaded tables and answers address lookups.

from __future__ import annotations

import csv
import io
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from ..extensions import db
from ..models import AllowlistEntry, AllowlistUpload
from .abi_codec import AbiError, normalize_address
from . import merkle_service


logger = logging.getLogger(__name__)

ADDRESS_COLUMN = "address"
AMOUNT_COLUMNS = ("maxmintamount", "max_mint_amount", "max")
DEFAULT_MAX_MINT_AMOUNT = 1
EXCEL_EXTENSIONS = {"xlsx", "xlsm", "xltx", "xltm"}


class AllowlistError(ValueError):
    """Raised when an allowlist table cannot be ingested."""


@dataclass
class IngestResult:
    upload: AllowlistUpload
    errors: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "upload": self.upload.to_dict(),
            "errors": self.errors,
        }


def read_table(file_name: str, raw: bytes) -> tuple[list[dict], str]:
    """Decode an uploaded CSV / JSON / Excel file into row dicts. Returns (rows, format)."""
    ext = (file_name or "").rsplit(".", 1)[-1].lower()
    if ext == "csv":
        text = raw.decode("utf-8-sig")
        reader = csv.DictReader(io.StringIO(text))
        return [row for row in reader], "CSV"
    if ext == "json":
        rows = json.loads(raw.decode("utf-8"))
        if isinstance(rows, dict):
            rows = rows.get("rows", rows.get("entries", []))
        if not isinstance(rows, list):
            raise AllowlistError("JSON allowlist must be a list of rows")
        return rows, "JSON"
    if ext in EXCEL_EXTENSIONS:
        from openpyxl import load_workbook
        wb = load_workbook(io.BytesIO(raw), data_only=True, read_only=True)
        sheet = wb.active
        data = list(sheet.values)
        if not data:
            return [], "EXCEL"
        headers = [str(h) if h is not None else "" for h in data[0]]
        rows = [
            {headers[i]: row[i] for i in range(min(len(headers), len(row)))}
            for row in data[1:]
        ]
        return rows, "EXCEL"
    raise AllowlistError("Unsupported file type; use .csv, .json or .xlsx")


def _column_map(rows: list[dict]) -> tuple[str, str | None]:
    headers: dict[str, str] = {}
    for row in rows:
        if not isinstance(row, dict):
            raise AllowlistError("Each allowlist row must be an object")
        for key in row.keys():
            if key is None:
                continue
            headers.setdefault(str(key).strip().lower(), key)
    if ADDRESS_COLUMN not in headers:
        raise AllowlistError("Allowlist must have an 'address' column")
    amount_key = next((headers[c] for c in AMOUNT_COLUMNS if c in headers), None)
    return headers[ADDRESS_COLUMN], amount_key


def _parse_amount(value: Any) -> int:
    if value is None or (isinstance(value, str) and not value.strip()):
        return DEFAULT_MAX_MINT_AMOUNT
    if isinstance(value, bool):
        raise ValueError("boolean is not a quantity")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError("quantity must be a whole number")
        value = int(value)
    amount = int(str(value).strip())
    if amount < 0:
        raise ValueError("quantity must be non-negative")
    return amount


def normalize_rows(rows: list[dict]) -> tuple[dict[str, int], list[dict], int]:
    """
    Validate rows into {address: max_mint_amount}.

    Returns (entries, errors, duplicate_count). Later rows win on duplicate
    addresses; malformed rows are reported and skipped.
    """
    if not rows:
        raise AllowlistError("Allowlist must have a header and at least one data row")
    address_key, amount_key = _column_map(rows)

    entries: dict[str, int] = {}
    errors: list[dict] = []
    duplicates = 0
    for row_number, row in enumerate(rows, start=2):
        raw_address = row.get(address_key)
        if raw_address is None or not str(raw_address).strip():
            errors.append({"row": row_number, "error": "address is empty"})
            continue
        try:
            address = normalize_address(str(raw_address))
        except AbiError as exc:
            errors.append({"row": row_number, "error": str(exc)})
            continue
        try:
            amount = _parse_amount(row.get(amount_key) if amount_key else None)
        except ValueError as exc:
            errors.append({"row": row_number, "error": f"maxMintAmount: {exc}"})
            continue
        if address in entries:
            duplicates += 1
        entries[address] = amount
    return entries, errors, duplicates


def ingest_rows(
    *,
    item_id: int,
    rows: list[dict],
    source_file_name: str | None = None,
    source_file_format: str | None = None,
    uploaded_by: str | None = None,
) -> IngestResult:
    """Replace the item's allowlist with the given rows."""
    entries, errors, duplicates = normalize_rows(rows)
    if not entries:
        raise AllowlistError("Allowlist contains no valid addresses")

    upload = AllowlistUpload(
        item_id=item_id,
        source_file_name=source_file_name,
        source_file_format=source_file_format,
        total_rows=len(rows),
        accepted_rows=len(entries),
        rejected_rows=len(errors),
        duplicate_rows=duplicates,
        merkle_root=merkle_service.build_tree(entries.keys()).root_hex,
        uploaded_by=uploaded_by,
    )
    db.session.add(upload)
    db.session.flush()

    db.session.query(AllowlistEntry).filter_by(item_id=item_id).delete()
    db.session.add_all(
        [
            AllowlistEntry(item_id=item_id, address=address, max_mint_amount=amount, upload_id=upload.id)
            for address, amount in entries.items()
        ]
    )
    db.session.commit()
    merkle_service.invalidate(item_id)

    logger.info(
        "Allowlist for item %s replaced: %s entries, %s rejected, root %s",
        item_id, len(entries), len(errors), upload.merkle_root,
    )
    return IngestResult(upload=upload, errors=errors)


def ingest_file(*, item_id: int, file_name: str, raw: bytes, uploaded_by: str | None = None) -> IngestResult:
    rows, fmt = read_table(file_name, raw)
    return ingest_rows(
        item_id=item_id,
        rows=rows,
        source_file_name=file_name,
        source_file_format=fmt,
        uploaded_by=uploaded_by,
    )


def get_entry(item_id: int, address: str) -> AllowlistEntry | None:
    try:
        normalized = normalize_address(address)
    except AbiError:
        return None
    return db.session.query(AllowlistEntry).filter_by(item_id=item_id, address=normalized).first()


def list_entries(item_id: int) -> list[AllowlistEntry]:
    return (
        db.session.query(AllowlistEntry)
        .filter_by(item_id=item_id)
        .order_by(AllowlistEntry.address.asc())
        .all()
    )


def latest_upload(item_id: int) -> AllowlistUpload | None:
    return (
        db.session.query(AllowlistUpload)
        .filter_by(item_id=item_id)
        .order_by(AllowlistUpload.id.desc())
        .first()
    )


def export_csv(item_id: int) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["address", "maxMintAmount"])
    for entry in list_entries(item_id):
        writer.writerow([entry.address, entry.max_mint_amount])
    return buffer.getvalue()
