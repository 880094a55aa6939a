from __future__ import annotations

import logging
from dataclasses import dataclass

from PySide6.QtCore import QObject

from frontdesk.app.db_debug import db_debug
from frontdesk.app.deletion import DeletionWorkflow
from frontdesk.app.filtering import FilterView
from frontdesk.app.form_controller import FormController
from frontdesk.app.identity import (
    IdentityAdapter,
    IdentityProvider,
    LocalIdentityProvider,
    SupabaseIdentityProvider,
)
from frontdesk.app.live_collection import LiveCollection
from frontdesk.app.notifications import NotificationChannel
from frontdesk.app.record_store import LocalSqliteRecordStore, RecordStore
from frontdesk.app.records import RESIDENT_SCHEMA, VISIT_SCHEMA, EntrySchema
from frontdesk.app.settings_store import BACKEND_SUPABASE, FrontDeskConfig
from frontdesk.app.supabase_rest import SupabaseRestClient
from frontdesk.app.supabase_store import SupabaseRecordStore
from frontdesk.core import StateStreamer


_LOGGER = logging.getLogger("frontdesk.context")


@dataclass(frozen=True, slots=True)
class EntryWorkspace:
    schema: EntrySchema
    collection: LiveCollection
    form: FormController
    deletion: DeletionWorkflow
    filter_view: FilterView


@dataclass(frozen=True, slots=True)
class FrontDeskContext:
    config: FrontDeskConfig
    store: RecordStore
    identity: IdentityAdapter
    notifications: NotificationChannel
    state_streamer: StateStreamer
    workspaces: tuple[EntryWorkspace, ...]

    def workspace(self, kind: str) -> EntryWorkspace:
        for workspace in self.workspaces:
            if workspace.schema.kind == kind:
                return workspace
        raise KeyError(kind)

    def shutdown(self) -> None:
        for workspace in self.workspaces:
            workspace.collection.dispose()
        shutdown = getattr(self.store, "shutdown", None)
        if callable(shutdown):
            shutdown()


def build_client_context(
    config: FrontDeskConfig,
    *,
    parent: QObject | None = None,
    store: RecordStore | None = None,
    provider: IdentityProvider | None = None,
    state_streamer: StateStreamer | None = None,
    schemas: tuple[EntrySchema, ...] = (VISIT_SCHEMA, RESIDENT_SCHEMA),
) -> FrontDeskContext:
    """Wire every component against one explicit config.

    `store` and `provider` can be injected (tests); otherwise both are built
    for `config.backend`. The identity adapter is created but not started.
    """
    streamer = state_streamer or StateStreamer()
    rest: SupabaseRestClient | None = None
    if config.backend == BACKEND_SUPABASE and (store is None or provider is None):
        rest = SupabaseRestClient(config.supabase, parent=parent)

    if provider is None:
        provider = SupabaseIdentityProvider(rest) if rest is not None else LocalIdentityProvider()
    identity = IdentityAdapter(provider, token=config.auth_token, parent=parent)

    if store is None:
        if rest is not None:
            store = SupabaseRecordStore(
                config.supabase,
                parent=parent,
                rest=rest,
                token_provider=identity.access_token,
            )
        else:
            store = LocalSqliteRecordStore(config.data_folder)

    notifications = NotificationChannel(timeout_ms=config.notification_timeout_ms, parent=parent)
    tz = config.tzinfo
    workspaces: list[EntryWorkspace] = []
    for schema in schemas:
        collection = LiveCollection(
            schema=schema,
            identity=identity,
            store=store,
            notifications=notifications,
            namespace=config.namespace,
            scope_policy=config.scope_for(schema.kind),
            tz=tz,
            state_streamer=streamer,
            parent=parent,
        )
        workspaces.append(
            EntryWorkspace(
                schema=schema,
                collection=collection,
                form=FormController(
                    collection=collection,
                    identity=identity,
                    store=store,
                    notifications=notifications,
                    parent=parent,
                ),
                deletion=DeletionWorkflow(
                    collection=collection,
                    identity=identity,
                    store=store,
                    notifications=notifications,
                    parent=parent,
                ),
                filter_view=FilterView(collection, parent=parent),
            )
        )

    _LOGGER.info("Client context ready (backend=%s, namespace=%s)", config.backend, config.namespace)
    db_debug(
        "context.ready",
        backend=config.backend,
        namespace=config.namespace,
        supabase=config.supabase.to_mapping(redact_api_key=True),
        timezone=config.timezone,
    )
    return FrontDeskContext(
        config=config,
        store=store,
        identity=identity,
        notifications=notifications,
        state_streamer=streamer,
        workspaces=tuple(workspaces),
    )
