"""ProjectHub UI — presentational view-models over the data context."""

from projecthub.ui.brochure_editor import BrochurePageEditor
from projecthub.ui.storage_manager import StorageManager, file_kind, format_file_size

__all__ = ["StorageManager", "BrochurePageEditor", "format_file_size", "file_kind"]
