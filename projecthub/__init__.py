"""
ProjectHub — Client-side data-access layer for project and client collaboration.
Version: 1.0

Mirrors rows from a hosted relational backend into in-memory collections,
scopes them per role (manager / employee / client), applies mutations
optimistically and reconciles on real-time change notifications.

Usage:
    from projecthub import DataContext, load_config

    ctx = DataContext.from_config(load_config())
    await ctx.set_user(UserContext(user_id="...", name="Asha", role="manager"))
    await ctx.initialize()
"""

__version__ = "1.0.0"
__all__ = ["engine", "backend", "models", "data", "ui", "DataContext", "load_config"]

from projecthub.data.context import DataContext  # noqa: E402,F401
from projecthub.engine.config import load_config  # noqa: E402,F401
