"""
Loader for exports of the equipment tracking spreadsheet.

THIS FILE CONTAINS SHEET-SPECIFIC LAYOUT:
- Column positions of the "Form Responses 1" history sheet (Google Form output)
- Column positions of the "MASTER ALAT" equipment sheet
- Defaults the sheet uses for blank cells (Gudang, "-", Aktif)

Rows are decoded here, once, into RawEventRecord / EquipmentRecord. Nothing
past this module indexes rows by column position.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterable

import pandas as pd

from tracker_core.config import get_settings
from tracker_core.events import EquipmentStatus, RawEventRecord
from tracker_core.reconciliation import NO_HOLDER, WAREHOUSE
from tracker_core.sync import EquipmentRecord, SyncChange

log = logging.getLogger(__name__)

# Header occupies sheet row 1, so the first data row is row 2
FIRST_DATA_ROW = 2


@dataclass
class LoadedSheets:
    """Container for both decoded sheets plus the raw equipment frame for write-back."""

    history: list[RawEventRecord]
    equipment: list[EquipmentRecord]
    equipment_frame: pd.DataFrame


class SheetExportLoader:
    """
    Loads CSV or XLSX exports of the tracking spreadsheet.

    History sheet columns (A-I):
        Timestamp, Nama, Merk, Tipe, No.Seri, Aksi, Teknisi, Lokasi, Catatan
    Equipment sheet columns (A-I):
        Nama, Merk, Tipe, No.Seri, Status, Lokasi, Peminjam, LastUpdate, KONDISI
    """

    HISTORY_COLUMNS = {
        "timestamp": 0,
        "equipment_id": 4,
        "action": 5,
        "actor": 6,
        "location": 7,
    }
    HISTORY_WIDTH = 9

    EQUIPMENT_COLUMNS = {
        "name": 0,
        "serial": 3,
        "status": 4,
        "location": 5,
        "holder": 6,
        "last_update": 7,
        "condition": 8,
    }
    EQUIPMENT_WIDTH = 11

    def __init__(
        self,
        history_path: Path | str,
        equipment_path: Path | str,
        history_sheet: str | None = None,
        equipment_sheet: str | None = None,
    ):
        settings = get_settings()
        self.history_path = Path(history_path)
        self.equipment_path = Path(equipment_path)
        self.history_sheet = history_sheet or settings.history_sheet
        self.equipment_sheet = equipment_sheet or settings.equipment_sheet

    def load_all(self) -> LoadedSheets:
        equipment_frame = self.read_equipment_frame()
        return LoadedSheets(
            history=self.load_history(),
            equipment=self.decode_equipment(equipment_frame),
            equipment_frame=equipment_frame,
        )

    def load_history(self) -> list[RawEventRecord]:
        """
        Decode the form-responses sheet.

        Event ids are "row-<sheet row>" so ties between identical timestamps
        replay in sheet order.
        """
        df = read_table(self.history_path, self.history_sheet, self.HISTORY_WIDTH)
        records = []
        for offset, row in enumerate(df.itertuples(index=False)):
            values = {
                name: row[position] for name, position in self.HISTORY_COLUMNS.items()
            }
            records.append(
                RawEventRecord(event_id=f"row-{offset + FIRST_DATA_ROW}", **values)
            )
        log.info("Loaded %d history rows from %s", len(records), self.history_path)
        return records

    def read_equipment_frame(self) -> pd.DataFrame:
        return read_table(self.equipment_path, self.equipment_sheet, self.EQUIPMENT_WIDTH)

    def decode_equipment(self, df: pd.DataFrame) -> list[EquipmentRecord]:
        cols = self.EQUIPMENT_COLUMNS
        records = []
        for offset, row in enumerate(df.itertuples(index=False)):
            records.append(
                EquipmentRecord(
                    row_number=offset + FIRST_DATA_ROW,
                    name=row[cols["name"]],
                    serial=row[cols["serial"]],
                    status=normalize_status(row[cols["status"]]),
                    location=row[cols["location"]] or WAREHOUSE,
                    holder=row[cols["holder"]] or NO_HOLDER,
                    condition=row[cols["condition"]].strip() or "Aktif",
                )
            )
        log.info("Loaded %d equipment rows from %s", len(records), self.equipment_path)
        return records


def normalize_status(value: str | None) -> EquipmentStatus:
    """Stored status text; anything unrecognized counts as available."""
    cleaned = (value or "").strip().lower()
    if cleaned == EquipmentStatus.BORROWED.value:
        return EquipmentStatus.BORROWED
    if cleaned == EquipmentStatus.MAINTENANCE.value:
        return EquipmentStatus.MAINTENANCE
    return EquipmentStatus.AVAILABLE


def read_table(path: Path, sheet_name: str, width: int) -> pd.DataFrame:
    """
    Read an export as text, padded to at least `width` columns.

    Spreadsheet exports drop trailing empty columns, so short rows and short
    tables are padded with empty strings.
    """
    if not path.exists():
        raise FileNotFoundError(f"Export not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".csv":
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
    elif suffix in (".xlsx", ".xlsm"):
        df = pd.read_excel(
            path, sheet_name=sheet_name, dtype=str, keep_default_na=False
        )
    else:
        raise ValueError(f"Unsupported export type {suffix!r} for {path}")

    df = df.fillna("")
    for extra in range(len(df.columns), width):
        df[f"_pad_{extra}"] = ""
    return df


def apply_changes(
    frame: pd.DataFrame,
    changes: Iterable[SyncChange],
    now: datetime | None = None,
) -> pd.DataFrame:
    """
    Write status, location, holder and last-update (columns E-H) for each change.

    Returns a modified copy; the input frame is left untouched.
    """
    cols = SheetExportLoader.EQUIPMENT_COLUMNS
    stamp = (now or datetime.now()).isoformat()
    updated = frame.copy()

    for change in changes:
        idx = change.row_number - FIRST_DATA_ROW
        if idx < 0 or idx >= len(updated):
            raise ValueError(f"Change targets row {change.row_number}, outside the table")
        updated.iat[idx, cols["status"]] = change.after.status.value
        updated.iat[idx, cols["location"]] = change.after.location
        updated.iat[idx, cols["holder"]] = change.after.holder
        updated.iat[idx, cols["last_update"]] = stamp

    return updated


def save_equipment(
    frame: pd.DataFrame, path: Path | str, sheet_name: str | None = None
) -> Path:
    """Write the equipment table back out, dropping padding columns left empty."""
    path = Path(path)
    keep = [
        c for c in frame.columns
        if not (str(c).startswith("_pad_") and (frame[c] == "").all())
    ]
    out = frame.loc[:, keep]
    if path.suffix.lower() == ".csv":
        out.to_csv(path, index=False)
    else:
        out.to_excel(path, sheet_name=sheet_name or get_settings().equipment_sheet, index=False)
    log.info("Wrote %d equipment rows to %s", len(out), path)
    return path
