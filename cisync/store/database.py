"""Relational ClusterImageSet store.

Image sets are kept in a single ``cluster_image_sets`` table with portable
SQLAlchemy types, so SQLite serves tests and local runs while PostgreSQL
serves shared deployments. The table mirrors the Kubernetes object closely
enough for the reconciler: ``id`` plays the role of ``uid`` and an integer
counter plays the role of ``resourceVersion``.
"""

from __future__ import annotations

import datetime as dt  # noqa: TC003
import typing as typ
import uuid

from sqlalchemy import JSON, DateTime, Integer, String, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from cisync.common.time import utcnow
from cisync.imagesets.models import ClusterImageSet, ClusterImageSetSpec, ObjectMeta

from .errors import PersistenceError

SessionFactory: typ.TypeAlias = async_sessionmaker[AsyncSession]


class Base(DeclarativeBase):
    """Base declarative class for image set persistence."""

    metadata: typ.Any


class ImageSetRecord(Base):
    """Row holding one ClusterImageSet."""

    __tablename__ = "cluster_image_sets"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(253), unique=True, index=True)
    release_image: Mapped[str] = mapped_column(String(1024))
    labels: Mapped[dict[str, str]] = mapped_column(JSON, default=dict)
    annotations: Mapped[dict[str, str]] = mapped_column(JSON, default=dict)
    version: Mapped[int] = mapped_column(Integer, default=1)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    def to_image_set(self) -> ClusterImageSet:
        """Return the row as a ClusterImageSet."""
        return ClusterImageSet(
            metadata=ObjectMeta(
                name=self.name,
                labels=dict(self.labels or {}),
                annotations=dict(self.annotations or {}),
                resource_version=str(self.version),
                uid=self.id,
            ),
            spec=ClusterImageSetSpec(release_image=self.release_image),
        )


class DatabaseImageSetStore:
    """:class:`~cisync.store.protocol.ImageSetStore` over SQLAlchemy."""

    def __init__(
        self, session_factory: SessionFactory, *, engine: AsyncEngine | None = None
    ) -> None:
        """Bind the store to a session factory created at startup.

        When ``engine`` is given, :meth:`close` disposes it.
        """
        self._session_factory = session_factory
        self._engine = engine

    async def get(self, name: str) -> ClusterImageSet | None:
        """Return the named image set, or ``None`` when absent."""
        try:
            async with self._session_factory() as session:
                record = await self._find(session, name)
        except SQLAlchemyError as exc:
            raise PersistenceError("get", name, str(exc)) from exc
        return None if record is None else record.to_image_set()

    async def create(self, image_set: ClusterImageSet) -> None:
        """Insert a new row; an existing name is a persistence error."""
        try:
            async with self._session_factory() as session, session.begin():
                session.add(
                    ImageSetRecord(
                        name=image_set.name,
                        release_image=image_set.release_image,
                        labels=dict(image_set.labels),
                        annotations=dict(image_set.metadata.annotations),
                    )
                )
        except IntegrityError as exc:
            raise PersistenceError(
                "create", image_set.name, "image set already exists"
            ) from exc
        except SQLAlchemyError as exc:
            raise PersistenceError("create", image_set.name, str(exc)) from exc

    async def update(self, image_set: ClusterImageSet) -> None:
        """Overwrite payload, labels and annotations of an existing row.

        Raises
        ------
        PersistenceError
            When the row is missing, or ``resource_version`` is set and no
            longer matches the stored version.

        """
        try:
            async with self._session_factory() as session, session.begin():
                record = await self._find(session, image_set.name)
                if record is None:
                    raise PersistenceError.missing("update", image_set.name)
                expected = image_set.metadata.resource_version
                if expected is not None and expected != str(record.version):
                    raise PersistenceError.conflict(image_set.name)
                record.release_image = image_set.release_image
                record.labels = dict(image_set.labels)
                record.annotations = dict(image_set.metadata.annotations)
                record.version += 1
        except SQLAlchemyError as exc:
            raise PersistenceError("update", image_set.name, str(exc)) from exc

    async def list_all(self) -> list[ClusterImageSet]:
        """Return every stored image set ordered by name."""
        try:
            async with self._session_factory() as session:
                records = (
                    await session.scalars(
                        select(ImageSetRecord).order_by(ImageSetRecord.name)
                    )
                ).all()
        except SQLAlchemyError as exc:
            raise PersistenceError("list", None, str(exc)) from exc
        return [record.to_image_set() for record in records]

    async def delete(self, name: str) -> None:
        """Delete the named row if it exists."""
        try:
            async with self._session_factory() as session, session.begin():
                record = await self._find(session, name)
                if record is not None:
                    await session.delete(record)
        except SQLAlchemyError as exc:
            raise PersistenceError("delete", name, str(exc)) from exc

    async def close(self) -> None:
        """Dispose the owned engine, if any."""
        if self._engine is not None:
            await self._engine.dispose()

    @staticmethod
    async def _find(session: AsyncSession, name: str) -> ImageSetRecord | None:
        return await session.scalar(
            select(ImageSetRecord).where(ImageSetRecord.name == name)
        )


async def init_imageset_storage(engine: AsyncEngine) -> None:
    """Create the image set table if it does not already exist.

    Examples
    --------
    >>> from sqlalchemy.ext.asyncio import create_async_engine
    >>> engine = create_async_engine("sqlite+aiosqlite:///imagesets.db")
    >>> await init_imageset_storage(engine)

    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def build_database_store(database_url: str) -> DatabaseImageSetStore:
    """Create an engine for ``database_url``, ensure the schema, return a store."""
    engine = create_async_engine(database_url)
    await init_imageset_storage(engine)
    return DatabaseImageSetStore(
        async_sessionmaker(engine, expire_on_commit=False), engine=engine
    )
