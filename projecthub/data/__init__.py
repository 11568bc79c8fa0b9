"""ProjectHub Data — the role-scoped data context and its sample dataset."""

from projecthub.data.brochure import is_page_editable
from projecthub.data.context import DataContext
from projecthub.data.files import storage_object_path
from projecthub.data.sample import sample_dataset
from projecthub.data.users import translate_sign_up_error

__all__ = [
    "DataContext",
    "is_page_editable",
    "storage_object_path",
    "sample_dataset",
    "translate_sign_up_error",
]
