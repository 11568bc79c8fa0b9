"""
ProjectHub CLI — inspection and maintenance commands.

Commands:
- projecthub config     — Print the effective configuration (secrets masked)
- projecthub projects   — List the projects a user can see
- projecthub lock       — Lock a brochure page for a user
- projecthub unlock     — Release a brochure page lock
- projecthub sample     — Dump the sample dataset as JSON
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Optional

from projecthub.engine.context import ROLES, UserContext
from projecthub.engine.errors import ConfigError, PageLockedError, ProjectHubError

logger = logging.getLogger("projecthub.cli")


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="projecthub",
        description="ProjectHub — role-scoped project data access",
    )
    parser.add_argument("--config", help="Path to projecthub.yaml (default: auto-discover)")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # projecthub config
    subparsers.add_parser("config", help="Print effective configuration")

    # projecthub projects
    projects_parser = subparsers.add_parser("projects", help="List projects visible to a user")
    _add_user_arguments(projects_parser)

    # projecthub lock / unlock
    lock_parser = subparsers.add_parser("lock", help="Lock a brochure page")
    lock_parser.add_argument("page_id", help="Brochure page id")
    _add_user_arguments(lock_parser)
    lock_parser.add_argument(
        "--exclusive", action="store_true", help="Fail if the page is already locked"
    )

    unlock_parser = subparsers.add_parser("unlock", help="Unlock a brochure page")
    unlock_parser.add_argument("page_id", help="Brochure page id")
    _add_user_arguments(unlock_parser)

    # projecthub sample
    subparsers.add_parser("sample", help="Dump the sample dataset as JSON")

    args = parser.parse_args(argv)

    if args.command == "config":
        return cmd_config(args)
    elif args.command == "projects":
        return asyncio.run(cmd_projects(args))
    elif args.command == "lock":
        return asyncio.run(cmd_lock(args))
    elif args.command == "unlock":
        return asyncio.run(cmd_unlock(args))
    elif args.command == "sample":
        return cmd_sample(args)
    else:
        parser.print_help()
        return 0


def _add_user_arguments(sub: argparse.ArgumentParser) -> None:
    sub.add_argument("--user-id", required=True, help="Acting user id")
    sub.add_argument("--role", choices=list(ROLES), default="manager", help="Acting user role")
    sub.add_argument("--name", default="", help="Acting user display name")


def _load(args: argparse.Namespace):
    from projecthub.engine.config import load_config

    config = load_config(args.config)
    logging.basicConfig(level=getattr(logging, config.logging.level, logging.INFO))
    return config


async def _open_context(args: argparse.Namespace):
    from projecthub.data.context import DataContext
    from projecthub.engine.logging import init_logging

    config = _load(args)
    if config.logging.structured:
        queue_cfg = config.logging.async_queue
        init_logging(
            log_dir=config.logging.directory,
            flush_interval_ms=queue_cfg.flush_interval_ms,
            flush_batch_size=queue_cfg.flush_batch_size,
            max_queue_size=queue_cfg.max_queue_size,
        )
    ctx = DataContext.from_config(config)
    ctx.realtime = False
    await ctx.set_user(UserContext(user_id=args.user_id, name=args.name, role=args.role))
    await ctx.initialize()
    return ctx


async def _close_context(ctx) -> None:
    from projecthub.engine.logging import shutdown_logging

    await ctx.close()
    shutdown_logging()


def cmd_config(args: argparse.Namespace) -> int:
    """Print the effective configuration."""
    try:
        config = _load(args)
    except ConfigError as e:
        print(f"[ERROR] {e.message}")
        return 1
    print(json.dumps(config.masked(), indent=2))
    return 0


async def cmd_projects(args: argparse.Namespace) -> int:
    """List projects visible to the acting user."""
    from projecthub.engine.security import visible_projects

    try:
        ctx = await _open_context(args)
    except ConfigError as e:
        print(f"[ERROR] {e.message}")
        return 1
    try:
        projects = visible_projects(ctx.user, ctx.projects)
        for project in projects:
            print(f"{project.id}\t{project.status}\t{project.progress_percentage}%\t{project.title}")
        print(f"\n{len(projects)} project(s) visible to {args.role} {args.user_id}")
    finally:
        await _close_context(ctx)
    return 0


async def cmd_lock(args: argparse.Namespace) -> int:
    """Lock a brochure page for the acting user."""
    try:
        ctx = await _open_context(args)
    except ConfigError as e:
        print(f"[ERROR] {e.message}")
        return 1
    try:
        if ctx.get_brochure_page(args.page_id) is None:
            print(f"[ERROR] Brochure page not found: {args.page_id}")
            return 1
        try:
            await ctx.lock_brochure_page(args.page_id, exclusive=args.exclusive)
        except PageLockedError as e:
            print(f"[ERROR] {e.message}")
            return 1
        print(f"[OK] Page {args.page_id} locked by {args.name or args.user_id}")
        return 0
    finally:
        await _close_context(ctx)


async def cmd_unlock(args: argparse.Namespace) -> int:
    """Release a brochure page lock."""
    try:
        ctx = await _open_context(args)
    except ConfigError as e:
        print(f"[ERROR] {e.message}")
        return 1
    try:
        if ctx.get_brochure_page(args.page_id) is None:
            print(f"[ERROR] Brochure page not found: {args.page_id}")
            return 1
        try:
            await ctx.unlock_brochure_page(args.page_id)
        except ProjectHubError as e:
            print(f"[ERROR] {e.message}")
            return 1
        print(f"[OK] Page {args.page_id} unlocked")
        return 0
    finally:
        await _close_context(ctx)


def cmd_sample(args: argparse.Namespace) -> int:
    """Dump the sample dataset as JSON."""
    from projecthub.data.sample import sample_dataset

    print(json.dumps(sample_dataset(), indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
