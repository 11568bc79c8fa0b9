"""
ProjectHub Brochure Page Editor — view-model for editing one brochure page.

Page content is a dict with ``body_content`` (HTML string) and ``images``
(list of URLs). Text edits go through the debounced callback, everything
else through the immediate one. While an image uploads its slot holds a
local placeholder URL that is swapped for the stored URL once it settles.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Set

from projecthub.engine.errors import ProjectHubError, ValidationError
from projecthub.models import UploadPayload, new_id

logger = logging.getLogger("projecthub.ui.brochure_editor")

PageContent = Dict[str, Any]
ContentCallback = Callable[[PageContent], None]

LOADING = "loading"
LOADED = "loaded"
ERROR = "error"


class BrochurePageEditor:

    def __init__(
        self,
        data: Any,
        project_id: str,
        page_number: int,
        content: PageContent,
        on_change: ContentCallback,
        on_change_debounced: ContentCallback,
        is_editable: bool = True,
        max_image_mb: Optional[int] = None,
    ):
        self.data = data
        self.project_id = project_id
        self.page_number = page_number
        self.content: PageContent = dict(content or {})
        self.on_change = on_change
        self.on_change_debounced = on_change_debounced
        self.is_editable = is_editable
        if max_image_mb is None:
            max_image_mb = data.storage_config.max_image_size_mb
        self.max_image_bytes = max_image_mb * 1024 * 1024

        self.editor_value: str = self.content.get("body_content") or ""
        self.images: List[str] = self._server_images(self.content)
        # Placeholder URLs of uploads still in flight.
        self.uploading: Set[str] = set()
        # Image URL → loading / loaded / error.
        self.image_load_status: Dict[str, str] = {}
        self.error: str = ""

    @staticmethod
    def _server_images(content: PageContent) -> List[str]:
        images = content.get("images")
        return list(images) if isinstance(images, list) else []

    @property
    def is_uploading(self) -> bool:
        return bool(self.uploading)

    # ── Incoming content ──

    def sync(self, content: PageContent, page_number: int) -> None:
        """
        Accept new page content from outside.

        The editor text is replaced only when a different page was loaded or
        the editor is still empty, so in-flight typing is never clobbered.
        Images follow the persisted list unless an upload is pending.
        """
        self.content = dict(content or {})
        incoming = self.content.get("body_content") or ""
        if page_number != self.page_number or (incoming != self.editor_value and not self.editor_value):
            self.editor_value = incoming
            self.page_number = page_number
        if not self.uploading:
            self.images = self._server_images(self.content)

    # ── Edits ──

    def edit_text(self, html: str) -> None:
        if not self.is_editable:
            return
        self.editor_value = html
        self.on_change_debounced({**self.content, "body_content": html})

    def _set_field(self, field: str, value: Any) -> None:
        self.content = {**self.content, field: value}
        self.on_change(self.content)

    async def upload_image(self, payload: UploadPayload) -> Optional[str]:
        """
        Add an image: placeholder first, then the stored URL.

        The placeholder is tracked by its own URL, so concurrent uploads and
        removals may reorder the list while an upload is in flight. If the
        placeholder was removed meanwhile the stored URL is not re-added.

        Returns the public URL, or None when the upload failed or was refused.

        Raises:
            ValidationError when the image exceeds the size limit.
        """
        if not self.is_editable:
            return None
        if payload.size > self.max_image_bytes:
            raise ValidationError(
                f"File size must be less than {self.max_image_bytes // (1024 * 1024)}MB",
                filename=payload.filename,
                size=payload.size,
            )

        placeholder = f"local://{new_id()}/{payload.filename}"
        self.images = self.images + [placeholder]
        self._set_field("images", list(self.images))
        self.image_load_status[placeholder] = LOADING
        self.uploading.add(placeholder)

        try:
            url = await self.data.upload_brochure_image(payload, self.project_id)
        except ProjectHubError as e:
            logger.error(f"Error uploading image {payload.filename}: {e}")
            self.error = "Failed to upload image. Please try again."
            self.image_load_status.pop(placeholder, None)
            if placeholder in self.images:
                self.images = [img for img in self.images if img != placeholder]
                self._set_field("images", list(self.images))
            return None
        finally:
            self.uploading.discard(placeholder)

        self.image_load_status.pop(placeholder, None)
        if placeholder not in self.images:
            logger.debug(f"Image {payload.filename} removed during upload, dropping {url}")
            return url
        self.images = [url if img == placeholder else img for img in self.images]
        self.image_load_status[url] = LOADED
        self._set_field("images", list(self.images))
        return url

    def remove_image(self, index: int) -> None:
        if not self.is_editable or not 0 <= index < len(self.images):
            return
        removed = self.images[index]
        self.images = self.images[:index] + self.images[index + 1:]
        self._set_field("images", list(self.images))
        self.image_load_status.pop(removed, None)

    # ── Display ──

    def is_placeholder(self, index: int) -> bool:
        """Whether the slot still shows a local placeholder."""
        return self.images[index] in self.uploading

    def load_status(self, index: int) -> Optional[str]:
        return self.image_load_status.get(self.images[index])

    def mark_image_loaded(self, index: int) -> None:
        self.image_load_status[self.images[index]] = LOADED

    def mark_image_failed(self, index: int) -> None:
        self.image_load_status[self.images[index]] = ERROR
