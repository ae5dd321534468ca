from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from types import ModuleType
from typing import Optional

from .database.connection import DBConfig, DatabaseConnection
from .entries.mysql_time_event_repository import MySQLTimeEventRepository
from .location.service import LocationService, StaticLocationProvider
from .session.machine import SessionStateMachine
from .session.reconciliation import ReconciliationEngine
from .session.runtime import TimeClockRuntime
from .session.service import TimeClockService
from .storage.local_store import JsonFileLocalStore
from .storage.snapshot import SnapshotStore
from .users.mysql_user_repository import MySQLUserRepository
from .users.service import AuthService, SessionIdentityProvider


@dataclass(frozen=True)
class Container:
    conn: DatabaseConnection

    users_repo: MySQLUserRepository
    events_repo: MySQLTimeEventRepository
    local_store: JsonFileLocalStore
    snapshots: SnapshotStore

    auth_service: AuthService
    identity: SessionIdentityProvider
    location_service: LocationService
    machine: SessionStateMachine
    clock_service: TimeClockService
    reconciler: ReconciliationEngine
    runtime: TimeClockRuntime


def build_container(*, settings: ModuleType, user_id: Optional[int] = None) -> Container:
    conn = DatabaseConnection.get_instance(DBConfig.from_dict(settings.DB_CONFIG))

    users_repo = MySQLUserRepository(conn)
    events_repo = MySQLTimeEventRepository(conn)
    local_store = JsonFileLocalStore(settings.LOCAL_STORE_PATH)
    snapshots = SnapshotStore(local_store, namespace=settings.STORAGE_NAMESPACE)

    auth_service = AuthService(users_repo)
    identity = SessionIdentityProvider(users_repo, user_id=user_id)

    provider = None
    if settings.KIOSK_LATITUDE is not None and settings.KIOSK_LONGITUDE is not None:
        provider = StaticLocationProvider(settings.KIOSK_LATITUDE, settings.KIOSK_LONGITUDE)
    location_service = LocationService(
        provider,
        timeout=timedelta(seconds=settings.LOCATION_TIMEOUT_SECONDS),
        max_age=timedelta(seconds=settings.LOCATION_MAX_AGE_SECONDS),
    )

    machine = SessionStateMachine(
        snapshots,
        snapshot_interval=timedelta(seconds=settings.SNAPSHOT_INTERVAL_SECONDS),
        max_session_age=timedelta(hours=settings.SESSION_MAX_AGE_HOURS),
    )
    clock_service = TimeClockService(machine, events_repo, identity)
    reconciler = ReconciliationEngine(
        machine,
        events_repo,
        identity,
        drift_threshold=timedelta(minutes=settings.START_TIME_DRIFT_MINUTES),
    )
    runtime = TimeClockRuntime(
        machine,
        clock_service,
        reconciler,
        identity=identity,
        location=location_service,
        tick_seconds=settings.TICK_SECONDS,
        sync_interval_seconds=settings.SYNC_INTERVAL_SECONDS,
        visibility_throttle_seconds=settings.VISIBILITY_SYNC_THROTTLE_SECONDS,
        initial_sync_delay_seconds=settings.INITIAL_SYNC_DELAY_SECONDS,
    )

    return Container(
        conn=conn,
        users_repo=users_repo,
        events_repo=events_repo,
        local_store=local_store,
        snapshots=snapshots,
        auth_service=auth_service,
        identity=identity,
        location_service=location_service,
        machine=machine,
        clock_service=clock_service,
        reconciler=reconciler,
        runtime=runtime,
    )
