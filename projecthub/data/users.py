"""Users — profile directory and account creation."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional

from projecthub.data.base import DataStoreBase
from projecthub.engine.errors import AccountError, BackendNotConfiguredError, ProjectHubError
from projecthub.engine.logging import log, log_security_event
from projecthub.models import User

logger = logging.getLogger("projecthub.data.users")

DEFAULT_SIGN_UP_ERROR = "Failed to create user account. Please try again."

# Remote message substring → user-facing message. First match wins.
SIGN_UP_ERRORS = [
    (
        "Database error saving new user",
        "Unable to create user account. This may be due to server configuration. "
        "Please contact your administrator or try again later.",
    ),
    ("User already registered", "A user with email {email} is already registered."),
    ("Invalid email", "Please enter a valid email address."),
    ("Password", "Password must be at least 6 characters long."),
]


def translate_sign_up_error(message: Optional[str], email: str) -> str:
    """Map a remote sign-up failure to the message shown to the manager."""
    if not message:
        return DEFAULT_SIGN_UP_ERROR
    for needle, friendly in SIGN_UP_ERRORS:
        if needle in message:
            return friendly.format(email=email)
    return message


class UsersMixin(DataStoreBase):

    async def refresh_users(self) -> None:
        if not self.has_backend:
            return
        try:
            response = await self.backend.table("profiles").select("id, full_name, role, email").execute()
            self.users = self._map_rows(response.data, User.from_profile)
            logger.info(f"Users loaded: {len(self.users)}")
        except (ProjectHubError, ValueError) as e:
            logger.error(f"Error loading users: {e}")

    def get_users_by_role(self, role: str) -> List[User]:
        return [u for u in self.users if u.role == role]

    async def create_user_account(
        self,
        email: str,
        password: str,
        full_name: str,
        role: str,
    ) -> Dict[str, str]:
        """
        Register an account and its profile row.

        The profile upsert runs ``profile_delay`` seconds after sign-up so a
        server-side profile trigger can go first; an upsert failure only warns.

        Raises:
            BackendNotConfiguredError without a backend.
            AccountError when the email is taken or sign-up is rejected.
        """
        if not self.has_backend:
            raise BackendNotConfiguredError(
                "Backend not configured. Cannot create user accounts.",
                operation="create_user_account",
            )

        existing = await (
            self.backend.table("profiles").select("id").eq("email", email).maybe_single().execute()
        )
        if existing.data:
            raise AccountError(f"A user with email {email} already exists.", operation="create_user_account")

        try:
            auth_user = await self.backend.auth.sign_up(
                email, password, metadata={"full_name": full_name, "role": role},
            )
        except AccountError as e:
            friendly = translate_sign_up_error(e.remote_message, email)
            logger.error(f"Sign-up failed for {email}: {e.remote_message or e.message}")
            log(log_security_event(
                "sign_up_failed", "users", f"profiles.{email}", role=role, reason=e.remote_message,
            ))
            raise AccountError(friendly, remote_message=e.remote_message, operation="create_user_account") from e

        await asyncio.sleep(self.profile_delay)

        try:
            await self.backend.table("profiles").upsert({
                "id": auth_user.id,
                "email": email,
                "full_name": full_name,
                "role": role,
            }, on_conflict="id").execute()
            self._audit("create", "profiles", auth_user.id)
        except ProjectHubError as e:
            logger.warning(f"Profile upsert for {auth_user.id} failed, relying on server trigger: {e}")

        self.users = self.users + [User(id=auth_user.id, name=full_name, email=email, role=role)]
        logger.info(f"Created {role} account {auth_user.id}")
        return {"id": auth_user.id}
