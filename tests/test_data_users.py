"""Unit tests for projecthub.data.users — profile directory and account creation."""

import pytest

from projecthub.data.users import DEFAULT_SIGN_UP_ERROR, translate_sign_up_error
from projecthub.engine.errors import AccountError, BackendNotConfiguredError


class TestTranslateSignUpError:

    def test_known_messages(self):
        assert translate_sign_up_error("User already registered", "a@b.c") == (
            "A user with email a@b.c is already registered."
        )
        assert translate_sign_up_error("Invalid email format", "x") == "Please enter a valid email address."
        assert translate_sign_up_error("Password should be at least 6 characters", "x") == (
            "Password must be at least 6 characters long."
        )
        assert translate_sign_up_error("Database error saving new user", "x").startswith(
            "Unable to create user account."
        )

    def test_unknown_and_empty(self):
        assert translate_sign_up_error("rate limited", "x") == "rate limited"
        assert translate_sign_up_error(None, "x") == DEFAULT_SIGN_UP_ERROR
        assert translate_sign_up_error("", "x") == DEFAULT_SIGN_UP_ERROR


class TestDirectory:

    @pytest.mark.asyncio
    async def test_refresh_and_by_role(self, ctx):
        await ctx.refresh_users()
        assert len(ctx.users) == 4
        assert [u.name for u in ctx.get_users_by_role("client")] == ["Priya Sharma", "Rajesh Kumar"]

    @pytest.mark.asyncio
    async def test_refresh_failure_keeps_users(self, ctx, backend):
        await ctx.refresh_users()
        backend.fail("profiles", "select")
        await ctx.refresh_users()
        assert len(ctx.users) == 4

    @pytest.mark.asyncio
    async def test_local_refresh_is_noop(self, local_ctx):
        before = list(local_ctx.users)
        await local_ctx.refresh_users()
        assert local_ctx.users == before


class TestCreateUserAccount:

    @pytest.mark.asyncio
    async def test_success(self, ctx, backend, manager):
        await ctx.set_user(manager)
        result = await ctx.create_user_account("new@example.com", "secret1", "Neha Verma", "employee")

        assert backend.auth.sign_ups[0]["metadata"] == {"full_name": "Neha Verma", "role": "employee"}
        profile = next(r for r in backend.rows("profiles") if r["id"] == result["id"])
        assert profile["email"] == "new@example.com"
        assert profile["role"] == "employee"
        assert ctx.users[-1].name == "Neha Verma"

    @pytest.mark.asyncio
    async def test_duplicate_email(self, ctx, backend):
        with pytest.raises(AccountError) as exc_info:
            await ctx.create_user_account("arjun@example.com", "secret1", "Arjun", "manager")
        assert exc_info.value.message == "A user with email arjun@example.com already exists."
        assert backend.auth.sign_ups == []

    @pytest.mark.asyncio
    async def test_sign_up_error_translated(self, ctx, backend):
        backend.auth.error = "Password should be at least 6 characters"
        with pytest.raises(AccountError) as exc_info:
            await ctx.create_user_account("new@example.com", "123", "Neha", "client")
        assert exc_info.value.message == "Password must be at least 6 characters long."
        assert exc_info.value.remote_message == "Password should be at least 6 characters"

    @pytest.mark.asyncio
    async def test_profile_upsert_failure_only_warns(self, ctx, backend):
        backend.fail("profiles", "upsert")
        result = await ctx.create_user_account("new@example.com", "secret1", "Neha", "client")
        assert result["id"] == backend.auth.sign_ups[0]["id"]
        assert ctx.users[-1].id == result["id"]

    @pytest.mark.asyncio
    async def test_requires_backend(self, local_ctx):
        with pytest.raises(BackendNotConfiguredError):
            await local_ctx.create_user_account("a@b.c", "secret1", "A", "client")
