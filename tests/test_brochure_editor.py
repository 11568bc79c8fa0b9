"""Unit tests for projecthub.ui.brochure_editor."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from projecthub.data.context import DataContext
from projecthub.engine.config import StorageConfig
from projecthub.engine.errors import BackendError, ValidationError
from projecthub.models import UploadPayload
from projecthub.ui.brochure_editor import LOADED, LOADING, BrochurePageEditor


def _editor(content=None, upload=None, is_editable=True):
    data = MagicMock()
    data.upload_brochure_image = upload or AsyncMock(return_value="https://cdn/img.png")
    return BrochurePageEditor(
        data,
        project_id="b1",
        page_number=1,
        content=content if content is not None else {"body_content": "<p>Hi</p>", "images": ["https://cdn/a.png"]},
        on_change=MagicMock(),
        on_change_debounced=MagicMock(),
        is_editable=is_editable,
        max_image_mb=1,
    )


class TestText:

    def test_initial_state(self):
        editor = _editor()
        assert editor.editor_value == "<p>Hi</p>"
        assert editor.images == ["https://cdn/a.png"]
        assert not editor.is_uploading

    def test_missing_fields(self):
        editor = _editor(content={"images": "not-a-list"})
        assert editor.editor_value == ""
        assert editor.images == []

    def test_edit_text_uses_debounced_callback(self):
        editor = _editor()
        editor.edit_text("<p>Hello</p>")
        editor.on_change_debounced.assert_called_once_with(
            {"body_content": "<p>Hello</p>", "images": ["https://cdn/a.png"]}
        )
        editor.on_change.assert_not_called()

    def test_read_only_ignores_edits(self):
        editor = _editor(is_editable=False)
        editor.edit_text("x")
        editor.remove_image(0)
        assert editor.editor_value == "<p>Hi</p>"
        assert editor.images == ["https://cdn/a.png"]
        editor.on_change_debounced.assert_not_called()


class TestSync:

    def test_same_page_keeps_typing(self):
        editor = _editor()
        editor.edit_text("<p>typing</p>")
        editor.sync({"body_content": "<p>server</p>", "images": []}, 1)
        assert editor.editor_value == "<p>typing</p>"
        assert editor.images == []

    def test_empty_editor_takes_server_text(self):
        editor = _editor(content={})
        editor.sync({"body_content": "<p>server</p>"}, 1)
        assert editor.editor_value == "<p>server</p>"

    def test_page_switch_replaces_text(self):
        editor = _editor()
        editor.sync({"body_content": "<p>page 2</p>"}, 2)
        assert editor.editor_value == "<p>page 2</p>"
        assert editor.page_number == 2

    def test_images_kept_while_uploading(self):
        editor = _editor()
        editor.uploading.add("local://x/new.png")
        editor.sync({"body_content": "", "images": []}, 1)
        assert editor.images == ["https://cdn/a.png"]


class TestImages:

    @pytest.mark.asyncio
    async def test_upload_replaces_placeholder(self):
        editor = _editor()
        seen = {}

        async def upload(payload, project_id):
            seen["placeholder"] = editor.images[1]
            seen["status"] = editor.load_status(1)
            seen["is_placeholder"] = editor.is_placeholder(1)
            return "https://cdn/new.png"

        editor.data.upload_brochure_image = upload
        url = await editor.upload_image(UploadPayload("new.png", b"x" * 10))

        assert url == "https://cdn/new.png"
        assert seen["placeholder"].startswith("local://") and seen["placeholder"].endswith("/new.png")
        assert seen["status"] == LOADING
        assert seen["is_placeholder"] is True
        assert editor.images == ["https://cdn/a.png", "https://cdn/new.png"]
        assert editor.load_status(1) == LOADED
        assert not editor.is_placeholder(1)
        assert not editor.is_uploading
        editor.on_change.assert_called_with({"body_content": "<p>Hi</p>", "images": editor.images})

    @pytest.mark.asyncio
    async def test_too_large(self):
        editor = _editor()
        with pytest.raises(ValidationError):
            await editor.upload_image(UploadPayload("big.png", b"x" * (1024 * 1024 + 1)))
        assert editor.images == ["https://cdn/a.png"]

    @pytest.mark.asyncio
    async def test_failure_removes_placeholder(self):
        editor = _editor(upload=AsyncMock(side_effect=BackendError("denied")))
        assert await editor.upload_image(UploadPayload("new.png", b"x")) is None
        assert editor.images == ["https://cdn/a.png"]
        assert editor.error == "Failed to upload image. Please try again."
        assert editor.image_load_status == {}
        editor.on_change.assert_called_with({"body_content": "<p>Hi</p>", "images": ["https://cdn/a.png"]})
        assert not editor.is_uploading

    @pytest.mark.asyncio
    async def test_read_only_refuses_upload(self):
        editor = _editor(is_editable=False)
        assert await editor.upload_image(UploadPayload("new.png", b"x")) is None
        editor.data.upload_brochure_image.assert_not_called()

    def test_remove_and_status(self):
        editor = _editor(content={"images": ["a", "b"]})
        editor.mark_image_loaded(1)
        editor.mark_image_failed(0)
        assert editor.image_load_status == {"a": "error", "b": LOADED}
        editor.remove_image(0)
        assert editor.images == ["b"]
        editor.on_change.assert_called_once_with({"images": ["b"]})
        assert editor.image_load_status == {"b": LOADED}
        editor.remove_image(5)
        assert editor.images == ["b"]

    @pytest.mark.asyncio
    async def test_concurrent_uploads_settle_out_of_order(self):
        gates = {"a.png": asyncio.Event(), "b.png": asyncio.Event()}

        async def upload(payload, project_id):
            await gates[payload.filename].wait()
            if payload.filename == "a.png":
                raise BackendError("denied")
            return "https://cdn/b.png"

        editor = _editor(upload=upload)
        first = asyncio.create_task(editor.upload_image(UploadPayload("a.png", b"x")))
        second = asyncio.create_task(editor.upload_image(UploadPayload("b.png", b"x")))
        await asyncio.sleep(0)
        assert len(editor.images) == 3

        gates["a.png"].set()
        assert await first is None
        gates["b.png"].set()
        assert await second == "https://cdn/b.png"

        assert editor.images == ["https://cdn/a.png", "https://cdn/b.png"]
        assert editor.load_status(1) == LOADED
        assert not editor.is_uploading
        editor.on_change.assert_called_with({"body_content": "<p>Hi</p>", "images": editor.images})

    @pytest.mark.asyncio
    async def test_removed_during_upload(self):
        gate = asyncio.Event()

        async def upload(payload, project_id):
            await gate.wait()
            return "https://cdn/new.png"

        editor = _editor(upload=upload)
        task = asyncio.create_task(editor.upload_image(UploadPayload("new.png", b"x")))
        await asyncio.sleep(0)
        editor.remove_image(1)
        editor.remove_image(0)

        gate.set()
        assert await task == "https://cdn/new.png"
        assert editor.images == []
        assert not editor.is_uploading


class TestImageLimit:

    def test_limit_from_storage_config(self, local_ctx):
        editor = BrochurePageEditor(local_ctx, "b1", 1, {}, MagicMock(), MagicMock())
        assert editor.max_image_bytes == 5 * 1024 * 1024

    @pytest.mark.asyncio
    async def test_configured_limit_applies(self):
        data = DataContext(storage_config=StorageConfig(max_image_size_mb=2))
        editor = BrochurePageEditor(data, "b1", 1, {}, MagicMock(), MagicMock())
        with pytest.raises(ValidationError):
            await editor.upload_image(UploadPayload("big.png", b"x" * (2 * 1024 * 1024 + 1)))
