"""Unit tests for projecthub.data.brochure — review workflow and page locks."""

import pytest

from projecthub.data.brochure import is_page_editable
from projecthub.engine.context import UserContext
from projecthub.engine.errors import (
    BackendError,
    BackendNotConfiguredError,
    PageLockedError,
    ValidationError,
)
from projecthub.models import BrochurePage, UploadPayload

from conftest import CLIENT_ID, EMPLOYEE_ID, MANAGER_ID


async def _loaded(ctx, user):
    await ctx.set_user(user)
    await ctx.initialize()
    return ctx


class TestLoading:

    @pytest.mark.asyncio
    async def test_manager_sees_everything(self, ctx, manager):
        await _loaded(ctx, manager)
        assert sorted(bp.id for bp in ctx.brochure_projects) == ["b1", "b2"]
        assert len(ctx.brochure_pages) == 4

    @pytest.mark.asyncio
    async def test_client_scoped_to_own_brochures(self, ctx, client_user):
        await _loaded(ctx, client_user)
        assert [bp.id for bp in ctx.brochure_projects] == ["b1"]
        assert sorted(p.id for p in ctx.brochure_pages) == ["pg1", "pg2", "pg3"]

    @pytest.mark.asyncio
    async def test_employee_scoped_to_assigned_projects(self, ctx, employee):
        await _loaded(ctx, employee)
        assert [bp.id for bp in ctx.brochure_projects] == ["b1"]
        assert all(p.project_id == "b1" for p in ctx.brochure_pages)

    @pytest.mark.asyncio
    async def test_failure_keeps_state(self, ctx, backend, manager):
        await _loaded(ctx, manager)
        backend.fail("brochure_pages", "select")
        await ctx.load_brochure_pages()
        assert len(ctx.brochure_pages) == 4

    @pytest.mark.asyncio
    async def test_pages_ordered(self, ctx, manager):
        await _loaded(ctx, manager)
        assert [p.page_number for p in ctx.get_brochure_pages("b1")] == [1, 2, 3]


class TestBrochureProjects:

    @pytest.mark.asyncio
    async def test_create(self, ctx, backend, manager):
        await _loaded(ctx, manager)
        created = await ctx.create_brochure_project("p2", "u-client-2", "Rajesh Kumar")
        assert created.status == "draft"
        assert created.client_name == "Rajesh Kumar"
        assert any(r["id"] == created.id for r in backend.rows("brochure_projects"))
        assert created.id in {bp.id for bp in ctx.brochure_projects}

    @pytest.mark.asyncio
    async def test_create_failure_returns_none(self, ctx, backend, manager):
        await _loaded(ctx, manager)
        backend.fail("brochure_projects", "insert")
        assert await ctx.create_brochure_project("p2", "u-client-2", "Rajesh Kumar") is None

    @pytest.mark.asyncio
    async def test_create_local(self, local_ctx):
        created = await local_ctx.create_brochure_project("1", "3", "Priya Sharma")
        assert created in local_ctx.brochure_projects

    @pytest.mark.asyncio
    async def test_update_status(self, ctx, backend, manager):
        await _loaded(ctx, manager)
        await ctx.update_brochure_project("b2", {"status": "ready_for_design"})
        assert next(r for r in backend.rows("brochure_projects") if r["id"] == "b2")["status"] == "ready_for_design"
        assert {bp.id for bp in ctx.get_brochure_projects_for_review()} == {"b1", "b2"}

    @pytest.mark.asyncio
    async def test_update_failure_does_not_raise(self, ctx, backend, manager):
        await _loaded(ctx, manager)
        backend.fail("brochure_projects", "update")
        await ctx.update_brochure_project("b2", {"status": "completed"})
        assert next(bp for bp in ctx.brochure_projects if bp.id == "b2").status == "draft"

    @pytest.mark.asyncio
    async def test_review_list_by_role(self, ctx, client_user, other_client):
        await _loaded(ctx, client_user)
        assert [bp.id for bp in ctx.get_brochure_projects_for_review()] == ["b1"]
        await _loaded(ctx, other_client)
        assert ctx.get_brochure_projects_for_review() == []


class TestPages:

    @pytest.mark.asyncio
    async def test_save_updates_existing(self, ctx, backend, manager):
        await _loaded(ctx, manager)
        await ctx.save_brochure_page("b1", 2, {"body_content": "<p>New</p>"})
        row = next(r for r in backend.rows("brochure_pages") if r["id"] == "pg2")
        assert row["content"] == {"body_content": "<p>New</p>"}
        assert row["approval_status"] == "pending"
        assert len(backend.rows("brochure_pages")) == 4

    @pytest.mark.asyncio
    async def test_save_inserts_missing(self, ctx, backend, manager):
        await _loaded(ctx, manager)
        await ctx.save_brochure_page("b1", 4, {"body_content": ""})
        assert len(backend.rows("brochure_pages")) == 5
        assert [p.page_number for p in ctx.get_brochure_pages("b1")] == [1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_save_failure_raises(self, ctx, backend, manager):
        await _loaded(ctx, manager)
        backend.fail("brochure_pages", "update")
        with pytest.raises(BackendError):
            await ctx.save_brochure_page("b1", 1, {})

    @pytest.mark.asyncio
    async def test_delete_renumbers_later_pages(self, ctx, backend, manager):
        await _loaded(ctx, manager)
        await ctx.delete_brochure_page("b1", 1)
        remaining = {r["id"]: r["page_number"] for r in backend.rows("brochure_pages") if r["project_id"] == "b1"}
        assert remaining == {"pg2": 1, "pg3": 2}
        assert [(p.id, p.page_number) for p in ctx.get_brochure_pages("b1")] == [("pg2", 1), ("pg3", 2)]

    @pytest.mark.asyncio
    async def test_delete_last_page_no_renumbering(self, ctx, backend, manager):
        await _loaded(ctx, manager)
        await ctx.delete_brochure_page("b1", 3)
        assert backend.queries_for("brochure_pages", "update") == []

    @pytest.mark.asyncio
    async def test_local_save_and_delete(self, local_ctx):
        await local_ctx.save_brochure_page("bx", 1, {"body_content": "a"})
        await local_ctx.save_brochure_page("bx", 1, {"body_content": "b"})
        assert [p.content["body_content"] for p in local_ctx.get_brochure_pages("bx")] == ["b"]
        await local_ctx.delete_brochure_page("bx", 1)
        assert local_ctx.get_brochure_pages("bx") == []


class TestPageComments:

    @pytest.mark.asyncio
    async def test_add_and_mark_done(self, ctx, backend, client_user):
        await _loaded(ctx, client_user)
        await ctx.add_page_comment("pg1", "Bigger logo", CLIENT_ID, "client")
        comment = ctx.get_page_comments("pg1")[0]
        assert comment.text == "Bigger logo"
        assert comment.action_type == "comment"

        await ctx.mark_comment_done(comment.id)
        assert ctx.get_page_comments("pg1")[0].marked_done is True

    @pytest.mark.asyncio
    async def test_add_failure_does_not_raise(self, ctx, backend, client_user):
        await _loaded(ctx, client_user)
        backend.fail("page_comments", "insert")
        await ctx.add_page_comment("pg1", "lost", CLIENT_ID, "client")
        assert ctx.get_page_comments("pg1") == []

    @pytest.mark.asyncio
    async def test_approve(self, ctx, backend, manager):
        await _loaded(ctx, manager)
        await ctx.approve_brochure_page("pg1", "approved", "looks great")
        assert next(r for r in backend.rows("brochure_pages") if r["id"] == "pg1")["approval_status"] == "approved"
        comment = ctx.get_page_comments("pg1")[-1]
        assert comment.text == "Page has been approved by Arjun Singh: looks great"
        assert comment.action_type == "approval"

    @pytest.mark.asyncio
    async def test_reject_without_comment(self, local_ctx):
        await local_ctx.set_user(UserContext(user_id="1", name="", role="manager"))
        local_ctx.brochure_pages = [BrochurePage(id="x", project_id="b", page_number=1)]
        await local_ctx.approve_brochure_page("x", "rejected")
        assert local_ctx.brochure_pages[0].approval_status == "rejected"
        assert local_ctx.get_page_comments("x")[0].text == "Page requires changes - Manager"

    @pytest.mark.asyncio
    async def test_approve_rollback(self, ctx, backend, manager):
        await _loaded(ctx, manager)
        backend.fail("brochure_pages", "update")
        await ctx.approve_brochure_page("pg1", "approved")
        assert ctx.get_brochure_page("pg1").approval_status == "pending"

    @pytest.mark.asyncio
    async def test_invalid_status(self, local_ctx):
        with pytest.raises(ValidationError):
            await local_ctx.approve_brochure_page("x", "maybe")


class TestLocking:

    @pytest.mark.asyncio
    async def test_lock_and_unlock(self, ctx, backend, employee):
        await _loaded(ctx, employee)
        await ctx.lock_brochure_page("pg1")
        page = ctx.get_brochure_page("pg1")
        assert page.is_locked and page.locked_by == EMPLOYEE_ID
        assert page.locked_by_name == "Rakesh Gupta"
        assert ctx.is_page_editable(page)

        await ctx.unlock_brochure_page("pg1")
        page = ctx.get_brochure_page("pg1")
        assert not page.is_locked and page.locked_by is None

    @pytest.mark.asyncio
    async def test_plain_lock_overwrites_holder(self, ctx, employee, manager):
        await _loaded(ctx, employee)
        await ctx.lock_brochure_page("pg1")
        await ctx.set_user(manager)
        await ctx.lock_brochure_page("pg1")
        assert ctx.get_brochure_page("pg1").locked_by == MANAGER_ID

    @pytest.mark.asyncio
    async def test_exclusive_lock_conflict(self, ctx, employee, manager):
        await _loaded(ctx, employee)
        await ctx.lock_brochure_page("pg1", exclusive=True)
        await ctx.set_user(manager)
        with pytest.raises(PageLockedError) as exc_info:
            await ctx.lock_brochure_page("pg1", exclusive=True)
        assert exc_info.value.locked_by == "Rakesh Gupta"
        assert ctx.get_brochure_page("pg1").locked_by == EMPLOYEE_ID

    @pytest.mark.asyncio
    async def test_local_exclusive_conflict(self, local_ctx, manager, employee):
        local_ctx.brochure_pages = [BrochurePage(id="x", project_id="b", page_number=1)]
        await local_ctx.set_user(employee)
        await local_ctx.lock_brochure_page("x", exclusive=True)
        await local_ctx.set_user(manager)
        with pytest.raises(PageLockedError):
            await local_ctx.lock_brochure_page("x", exclusive=True)

    @pytest.mark.asyncio
    async def test_lock_without_user_is_noop(self, ctx, backend):
        await ctx.lock_brochure_page("pg1")
        assert backend.queries_for("brochure_pages", "update") == []

    @pytest.mark.asyncio
    async def test_lock_failure_does_not_raise(self, ctx, backend, employee):
        await _loaded(ctx, employee)
        backend.fail("brochure_pages", "update")
        await ctx.lock_brochure_page("pg1")
        assert not ctx.get_brochure_page("pg1").is_locked


class TestIsPageEditable:

    def test_rules(self, manager, employee):
        unlocked = BrochurePage(id="x", project_id="b", page_number=1)
        mine = unlocked.merged({"is_locked": True, "locked_by": EMPLOYEE_ID})
        assert is_page_editable(unlocked, manager)
        assert is_page_editable(mine, employee)
        assert not is_page_editable(mine, manager)
        assert not is_page_editable(None, manager)
        assert not is_page_editable(unlocked, None)


class TestBrochureImages:

    @pytest.mark.asyncio
    async def test_upload_returns_public_url(self, ctx, backend, manager):
        await ctx.set_user(manager)
        url = await ctx.upload_brochure_image(UploadPayload("hero.jpg", b"\xff\xd8"), "b1")
        assert url.startswith("https://fake.backend/storage/v1/object/public/brochure-images/b1/")
        assert url.endswith(".jpg")
        assert len(backend.storage.objects) == 1

    @pytest.mark.asyncio
    async def test_upload_failure_raises(self, ctx, backend):
        backend.storage.failures["upload"] = BackendError("nope")
        with pytest.raises(BackendError):
            await ctx.upload_brochure_image(UploadPayload("hero.jpg", b"x"), "b1")

    @pytest.mark.asyncio
    async def test_requires_backend(self, local_ctx):
        with pytest.raises(BackendNotConfiguredError):
            await local_ctx.upload_brochure_image(UploadPayload("hero.jpg", b"x"), "b1")
