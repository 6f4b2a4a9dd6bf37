# Spreadsheet-specific adapters
# Column layouts of the tracking spreadsheet live here, not in tracker_core

from .sheet_client import SheetExportLoader, LoadedSheets, apply_changes, save_equipment

__all__ = ["SheetExportLoader", "LoadedSheets", "apply_changes", "save_equipment"]
