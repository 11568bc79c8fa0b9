"""
ProjectHub DataContext — the single owner of every collection.

Lifecycle:
    ctx = DataContext.from_config(config)
    await ctx.set_user(user)
    await ctx.initialize()      # load everything, subscribe to changes
    ...
    await ctx.close()           # drop channels, close the HTTP pool

Without a backend the context starts with the sample dataset and every
mutation stays local.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from projecthub.backend import BackendClient, ChangeEvent, ChangeFeed, Channel, RealtimeListener
from projecthub.data.brochure import BrochureMixin
from projecthub.data.comments import CommentsMixin
from projecthub.data.files import FilesMixin
from projecthub.data.leads import LeadsMixin
from projecthub.data.projects import ProjectsMixin
from projecthub.data.sample import sample_comment_tasks, sample_files, sample_projects, sample_stages
from projecthub.data.tasks import TasksMixin
from projecthub.data.users import UsersMixin
from projecthub.engine.cache import FileListStore, create_file_list_store
from projecthub.engine.config import HubConfig
from projecthub.engine.context import UserContext, set_current_user
from projecthub.engine.logging import log, log_system_event

logger = logging.getLogger("projecthub.data.context")


class DataContext(
    ProjectsMixin,
    CommentsMixin,
    TasksMixin,
    FilesMixin,
    BrochureMixin,
    LeadsMixin,
    UsersMixin,
):
    """Role-scoped in-memory mirror of the backend tables."""

    def __init__(
        self,
        *args: Any,
        realtime: bool = True,
        listener: Optional[RealtimeListener] = None,
        **kwargs: Any,
    ):
        super().__init__(*args, **kwargs)
        self.realtime = realtime
        self.listener = listener
        self._channels: List[Channel] = []
        if not self.has_backend:
            self.stages = sample_stages()
            self.comment_tasks = sample_comment_tasks()
            self.files = sample_files()
            self.set_projects(sample_projects())

    @classmethod
    def from_config(
        cls,
        config: HubConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        file_store: Optional[FileListStore] = None,
        feed: Optional[ChangeFeed] = None,
    ) -> "DataContext":
        """Wire backend client, change feed, realtime listener and local file store from config."""
        backend = BackendClient.from_config(config, transport=transport)
        feed = feed if feed is not None else ChangeFeed()
        listener = None
        if backend is not None and config.realtime.enabled:
            listener = RealtimeListener(
                config.backend.realtime_url,
                config.backend.anon_key,
                feed,
                schema=config.backend.schema_name,
                heartbeat_interval=config.realtime.heartbeat_interval,
                reconnect_delay=config.realtime.reconnect_delay,
            )
        if file_store is None:
            file_store = create_file_list_store(
                config.redis.url, db=config.redis.db, ttl=config.redis.fallback_ttl,
            )
        return cls(
            backend=backend,
            feed=feed,
            file_store=file_store,
            storage_config=config.storage,
            realtime=config.realtime.enabled,
            listener=listener,
        )

    # ── Session ──

    async def set_user(self, user: Optional[UserContext]) -> None:
        """Switch the acting user and recompute their accessible projects."""
        self.user = user
        set_current_user(user)
        if user is not None:
            user.accessible_project_ids = await self.fetch_accessible_project_ids()
            logger.info(f"Acting as {user.role} {user.user_id}")

    # ── Lifecycle ──

    async def initialize(self) -> None:
        await self.refresh_users()
        await self.load_projects()
        await self.load_tasks()
        await self.load_global_comments()
        await self.load_leads()
        await self.load_files()

        if self.user is not None:
            self.user.accessible_project_ids = await self.fetch_accessible_project_ids()

        # Page visibility depends on the brochure projects loaded just before.
        await self.load_brochure_projects()
        await self.load_brochure_pages()
        await self.load_page_comments()

        self.subscribe_changes()
        log(log_system_event(
            "data_context_initialized",
            details={
                "backend": self.has_backend,
                "projects": len(self.projects),
                "channels": len(self._channels),
            },
        ))

    def table_loaders(self) -> Dict[str, Callable[[], Awaitable[None]]]:
        """Table name → full-collection reload run on every change to it."""
        return {
            "projects": self.load_projects,
            "profiles": self.refresh_users,
            "tasks": self.load_tasks,
            "global_comments": self.load_global_comments,
            "brochure_projects": self.load_brochure_projects,
            "brochure_pages": self.load_brochure_pages,
            "page_comments": self.load_page_comments,
            "files": self.load_files,
            "leads": self.load_leads,
        }

    def subscribe_changes(self) -> List[Channel]:
        """
        One channel per watched table, then start the listener that feeds
        them. No-op without backend, feed or realtime.
        """
        if not self.has_backend or self.feed is None or not self.realtime or self._channels:
            return self._channels
        for table, loader in self.table_loaders().items():
            channel = self.feed.channel(f"{table}_changes").on(table, self._reloader(loader)).subscribe()
            self._channels.append(channel)
        logger.info(f"Subscribed to {len(self._channels)} change channels")
        if self.listener is not None:
            self.listener.start(list(self.table_loaders()))
        return self._channels

    @staticmethod
    def _reloader(loader: Callable[[], Awaitable[None]]) -> Callable[[ChangeEvent], Awaitable[None]]:
        async def handle(change: ChangeEvent) -> None:
            logger.debug(f"{change.event_type} on {change.table}, reloading")
            await loader()
        return handle

    async def close(self) -> None:
        if self.listener is not None:
            await self.listener.stop()
        if self.feed is not None:
            for channel in self._channels:
                self.feed.remove_channel(channel)
        self._channels = []
        if self.backend is not None:
            await self.backend.close()
        logger.info("Data context closed")
