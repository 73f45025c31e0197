"""Dependency container wiring for the application."""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta

from supabase import create_client

from lunch_tracker.adapters.memory_document_store import InMemoryDocumentStore
from lunch_tracker.adapters.openai_suggestion_client import OpenAISuggestionClient
from lunch_tracker.adapters.supabase_document_store import SupabaseDocumentStore
from lunch_tracker.config import Settings
from lunch_tracker.domain.errors import StoreSubscriptionError
from lunch_tracker.services.catalog import CatalogMutator, CatalogStore
from lunch_tracker.services.descriptions import DescriptionGenerator
from lunch_tracker.services.groups import GroupStore
from lunch_tracker.services.preferences import PreferenceStore
from lunch_tracker.services.recommendations import RecommendationPipeline
from lunch_tracker.services.roster import RosterSynchronizer
from lunch_tracker.services.session import LunchSession
from lunch_tracker.services.store import DocumentStore
from lunch_tracker.services.suggestions import SuggestionClient


@dataclass
class StreamStatus:
    """Outcome of the background change stream."""

    failure: StoreSubscriptionError | None = None

    def record(self, task: asyncio.Task[None]) -> None:
        """Keep the error of a change-stream task that gave up."""
        if task.cancelled():
            return
        exc = task.exception()
        if isinstance(exc, StoreSubscriptionError):
            self.failure = exc

    def check(self) -> None:
        """Raise when the cached stores no longer follow the backing store."""
        if self.failure is not None:
            raise StoreSubscriptionError(str(self.failure)) from self.failure


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    store: DocumentStore
    suggestion_client: SuggestionClient
    group_store: GroupStore
    catalog_store: CatalogStore
    catalog_mutator: CatalogMutator
    roster: RosterSynchronizer
    recommendation_pipeline: RecommendationPipeline
    stream_status: StreamStatus
    start_resources: Callable[[], Awaitable[None]]
    close_resources: Callable[[], Awaitable[None]]

    def create_session(self, preferences: PreferenceStore) -> LunchSession:
        """Create the local state for one client device."""
        session = LunchSession(
            group_store=self.group_store,
            catalog=self.catalog_store,
            catalog_mutator=self.catalog_mutator,
            roster=self.roster,
            pipeline=self.recommendation_pipeline,
            preferences=preferences,
            preference_ttl_days=self.settings.preference_ttl_days,
            recent_window=timedelta(hours=self.settings.recent_window_hours),
        )
        session.restore()
        return session


def build_store(settings: Settings) -> DocumentStore:
    """Create the configured document store."""
    if settings.store_backend == "memory":
        return InMemoryDocumentStore()
    if settings.store_backend != "supabase":
        raise ValueError(f"Unknown store backend: {settings.store_backend}")
    if not settings.supabase_url or not settings.supabase_service_key:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY are required")
    supabase_client = create_client(
        settings.supabase_url, settings.supabase_service_key
    )
    return SupabaseDocumentStore(
        client=supabase_client,
        table=settings.supabase_documents_table,
        max_poll_failures=settings.store_max_poll_failures,
    )


def build_container(
    settings: Settings | None = None,
    store: DocumentStore | None = None,
    suggestion_client: SuggestionClient | None = None,
) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    resolved_store = store or build_store(resolved_settings)
    resolved_client = suggestion_client or OpenAISuggestionClient.create(
        api_key=resolved_settings.openai_api_key,
        model=resolved_settings.openai_model,
        reasoning_effort=resolved_settings.openai_reasoning_effort,
        store=resolved_settings.openai_store,
    )
    group_store = GroupStore(
        store=resolved_store,
        default_name=resolved_settings.default_group_name,
        default_location=resolved_settings.default_group_location,
    )
    catalog_store = CatalogStore(resolved_store)
    catalog_mutator = CatalogMutator(
        catalog=catalog_store,
        descriptions=DescriptionGenerator(resolved_client),
    )
    roster = RosterSynchronizer(group_store)
    pipeline = RecommendationPipeline(client=resolved_client, group_store=group_store)
    stream_status = StreamStatus()
    background: list[asyncio.Task[None]] = []

    async def start_resources() -> None:
        group_store.start()
        catalog_store.start()
        group_store.ensure_seeded()
        if isinstance(resolved_store, SupabaseDocumentStore):
            task = asyncio.create_task(
                resolved_store.watch(resolved_settings.store_poll_interval_seconds)
            )
            task.add_done_callback(stream_status.record)
            background.append(task)

    async def close_resources() -> None:
        for task in background:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError, StoreSubscriptionError):
                await task
        background.clear()
        group_store.close()
        catalog_store.close()
        if isinstance(resolved_client, OpenAISuggestionClient):
            await resolved_client.close()

    return AppContainer(
        settings=resolved_settings,
        store=resolved_store,
        suggestion_client=resolved_client,
        group_store=group_store,
        catalog_store=catalog_store,
        catalog_mutator=catalog_mutator,
        roster=roster,
        recommendation_pipeline=pipeline,
        stream_status=stream_status,
        start_resources=start_resources,
        close_resources=close_resources,
    )
