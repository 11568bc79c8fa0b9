"""ProjectHub Auth Client — sign-up against the hosted auth service."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from projecthub.engine.errors import AccountError, BackendError

logger = logging.getLogger("projecthub.backend.auth")


@dataclass
class AuthUser:
    id: str
    email: str = ""
    user_metadata: Dict[str, Any] = field(default_factory=dict)


class AuthClient:
    def __init__(self, backend: Any):
        self._backend = backend

    async def sign_up(
        self,
        email: str,
        password: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuthUser:
        """
        Register a new account with ``metadata`` stored as user metadata.

        Raises:
            AccountError carrying the remote message on any rejection.
        """
        try:
            response = await self._backend.request(
                "POST",
                f"{self._backend.auth_url}/signup",
                json={"email": email, "password": password, "data": metadata or {}},
                table="auth",
                operation="sign_up",
            )
        except BackendError as e:
            raise AccountError(
                e.message,
                remote_message=e.message,
                status_code=e.status_code,
                operation="sign_up",
            ) from e

        body = response.json() if response.content else {}
        user = body.get("user") if isinstance(body.get("user"), dict) else body
        if not isinstance(user, dict) or not user.get("id"):
            raise AccountError(
                "Failed to create user account. Please try again.",
                remote_message=None,
                operation="sign_up",
            )
        logger.info(f"Signed up user {user['id']}")
        return AuthUser(
            id=user["id"],
            email=user.get("email") or email,
            user_metadata=user.get("user_metadata") or {},
        )
