"""
Manifest Store

SQLAlchemy persistence for compiled manifests (one row per site and date)
and for the last directive written to each thermostat.
"""

import json
import logging
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    func,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .exceptions import ManifestPersistenceError
from .models import DailyManifest

logger = logging.getLogger(__name__)

Base = declarative_base()


class DailyManifestRow(Base):
    __tablename__ = "daily_manifests"

    id = Column(Integer, primary_key=True)
    site_id = Column(String(64), nullable=False, index=True)
    manifest_date = Column(Date, nullable=False)

    open_time = Column(String(5))
    close_time = Column(String(5))
    is_closed = Column(Boolean, default=False)
    manifest_json = Column(Text, nullable=False)

    generated_at = Column(DateTime(timezone=True), nullable=False)
    evaluated_at = Column(String(5))
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Actuation outcome, reported back after the manifest is stored
    push_status = Column(String(20))
    push_detail = Column(Text)
    pushed_at = Column(DateTime(timezone=True))

    __table_args__ = (UniqueConstraint("site_id", "manifest_date", name="uq_manifest_site_date"),)


class ThermostatStateRow(Base):
    __tablename__ = "thermostat_states"

    id = Column(Integer, primary_key=True)
    site_id = Column(String(64), nullable=False)
    device_id = Column(String(64), nullable=False)
    directive = Column(Text)
    directive_generated_at = Column(DateTime(timezone=True))

    __table_args__ = (UniqueConstraint("site_id", "device_id", name="uq_thermostat_site_device"),)


def create_session_factory(database_url: str) -> sessionmaker:
    """Create the engine, ensure tables exist and return a session factory.

    SQLite connections may be used from compile worker threads; an in-memory
    database is shared through a single static connection.
    """
    kwargs = {}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **kwargs)
    Base.metadata.create_all(engine)
    logger.debug(f"Manifest database ready: {engine.url.render_as_string(hide_password=True)}")
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _row_to_dict(row: DailyManifestRow) -> dict:
    return {
        "site_id": row.site_id,
        "date": row.manifest_date.isoformat(),
        "manifest": json.loads(row.manifest_json),
        "manifest_json": row.manifest_json,
        "generated_at": row.generated_at.isoformat() if row.generated_at else None,
        "evaluated_at": row.evaluated_at,
        "push_status": row.push_status,
        "push_detail": row.push_detail,
        "pushed_at": row.pushed_at.isoformat() if row.pushed_at else None,
    }


class ManifestStore:
    """Idempotent manifest persistence keyed by (site_id, manifest_date)."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _apply(self, row: DailyManifestRow, manifest: DailyManifest, generated_at: datetime) -> None:
        row.open_time = manifest.hours.open_time
        row.close_time = manifest.hours.close_time
        row.is_closed = manifest.hours.is_closed
        row.manifest_json = manifest.to_json()
        row.generated_at = generated_at
        row.evaluated_at = manifest.evaluated_at

    def upsert(self, manifest: DailyManifest, generated_at: Optional[datetime] = None) -> bool:
        """Insert the manifest, or overwrite the existing row for its site and date.

        Args:
            manifest: Compiled manifest
            generated_at: Compilation timestamp (defaults to now, UTC)

        Returns:
            True if a new row was inserted, False if an existing one was updated

        Raises:
            ManifestPersistenceError: If the write fails
        """
        generated_at = generated_at or _utcnow()
        key = {"site_id": manifest.site_id, "manifest_date": manifest.manifest_date}

        with self.session_factory() as session:
            try:
                row = session.query(DailyManifestRow).filter_by(**key).one_or_none()
                created = row is None
                if created:
                    row = DailyManifestRow(**key)
                    session.add(row)
                self._apply(row, manifest, generated_at)
                session.commit()
            except IntegrityError:
                # Another writer inserted the same key first; overwrite its row
                session.rollback()
                logger.info(f"Manifest {manifest.site_id}/{manifest.manifest_date} inserted concurrently, updating")
                try:
                    row = session.query(DailyManifestRow).filter_by(**key).one()
                    self._apply(row, manifest, generated_at)
                    session.commit()
                    created = False
                except SQLAlchemyError as e:
                    session.rollback()
                    raise ManifestPersistenceError(
                        f"Failed to store manifest {manifest.site_id}/{manifest.manifest_date}: {e}"
                    ) from e
            except SQLAlchemyError as e:
                session.rollback()
                raise ManifestPersistenceError(
                    f"Failed to store manifest {manifest.site_id}/{manifest.manifest_date}: {e}"
                ) from e

        logger.info(f"{'Stored' if created else 'Updated'} manifest {manifest.site_id}/{manifest.manifest_date}")
        return created

    def get(self, site_id: str, manifest_date: date) -> Optional[dict]:
        """Stored manifest row as a dictionary, or None."""
        with self.session_factory() as session:
            row = (
                session.query(DailyManifestRow)
                .filter_by(site_id=site_id, manifest_date=manifest_date)
                .one_or_none()
            )
            return _row_to_dict(row) if row else None

    def count(self, site_id: str) -> int:
        with self.session_factory() as session:
            return session.query(DailyManifestRow).filter_by(site_id=site_id).count()

    def record_push_result(
        self,
        site_id: str,
        manifest_date: date,
        status: str,
        detail: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> None:
        """Attach the push outcome to a stored manifest. The document is left untouched."""
        with self.session_factory() as session:
            try:
                row = (
                    session.query(DailyManifestRow)
                    .filter_by(site_id=site_id, manifest_date=manifest_date)
                    .one_or_none()
                )
                if row is None:
                    logger.warning(f"No manifest {site_id}/{manifest_date} to record push result on")
                    return
                row.push_status = status
                row.push_detail = detail
                row.pushed_at = at or _utcnow()
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                raise ManifestPersistenceError(f"Failed to record push result for {site_id}/{manifest_date}: {e}") from e


class DeviceStateStore:
    """Last directive per thermostat."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def write_directive(self, site_id: str, device_id: str, directive: str, at: Optional[datetime] = None) -> None:
        """Store the directive for a device, replacing the previous one.

        Raises:
            ManifestPersistenceError: If the write fails
        """
        with self.session_factory() as session:
            try:
                row = (
                    session.query(ThermostatStateRow)
                    .filter_by(site_id=site_id, device_id=device_id)
                    .one_or_none()
                )
                if row is None:
                    row = ThermostatStateRow(site_id=site_id, device_id=device_id)
                    session.add(row)
                row.directive = directive
                row.directive_generated_at = at or _utcnow()
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                raise ManifestPersistenceError(f"Failed to write directive for {site_id}/{device_id}: {e}") from e

    def get_directive(self, site_id: str, device_id: str) -> Optional[str]:
        with self.session_factory() as session:
            row = (
                session.query(ThermostatStateRow)
                .filter_by(site_id=site_id, device_id=device_id)
                .one_or_none()
            )
            return row.directive if row else None
