# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Control-plane database connection management using SQLAlchemy.

The control-plane database stores the workspace registry, module
installation records and per-workspace operation locks.

Lifecycle operations never hold a control-plane transaction open while
DDL runs against a tenant database. Each registry mutation is its own
short unit of work obtained from ControlPlane.unit(), committed before
the next physical step starts.

Example:
    from tenantops.infrastructure.database.connection import (
        ControlPlane,
        create_control_plane_engine,
        create_control_plane_sessionmaker,
    )

    engine = create_control_plane_engine(settings.control_db.url)
    control_plane = ControlPlane(create_control_plane_sessionmaker(engine))

    with control_plane.unit() as session:
        session.add(workspace)
"""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from tenantops.core.exceptions import DatabaseError
from tenantops.infrastructure.database.models.base import Base


def create_control_plane_engine(
    url: str, pool_size: int = 5, max_overflow: int = 10, echo: bool = False
) -> Engine:
    """Create an engine for the control-plane database.

    Pool sizing only applies to server databases; SQLite uses the
    dialect's default pool.

    Args:
        url: SQLAlchemy database URL.
        pool_size: Connection pool size.
        max_overflow: Maximum overflow connections.
        echo: Log emitted SQL.

    Returns:
        The SQLAlchemy engine.
    """
    if make_url(url).get_backend_name() == "sqlite":
        return create_engine(url, echo=echo)

    return create_engine(
        url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_recycle=1800,
        echo=echo,
    )


def create_control_plane_sessionmaker(engine: Engine) -> sessionmaker[Session]:
    """Create the session factory for control-plane units of work.

    Objects stay usable after commit so lifecycle operations can return
    them to callers.
    """
    return sessionmaker(
        bind=engine,
        class_=Session,
        expire_on_commit=False,
        autoflush=False,
    )


def create_control_plane_schema(engine: Engine) -> None:
    """Create the control-plane tables if they do not exist.

    Args:
        engine: Control-plane engine.

    Raises:
        DatabaseError: If table creation fails.
    """
    try:
        Base.metadata.create_all(engine)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to create control-plane schema", e) from e


class ControlPlane:
    """Provides short units of work against the control-plane registry.

    In the default mode every unit opens its own session and commits on
    exit, so a registry mutation is durable before the caller moves on to
    a physical step.

    With ``use_transactions=False`` all units share one caller-owned
    session and only flush. The caller's enclosing transaction decides
    whether anything is committed. This mode exists for harnesses that
    wrap a whole lifecycle operation in a transaction they roll back
    afterwards. Objects returned in this mode are live instances of the
    caller's session; a rollback expires them, and rows that were never
    committed can no longer be loaded through them.

    Attributes:
        uses_transactions: Whether each unit commits on its own.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        *,
        use_transactions: bool = True,
        session: Session | None = None,
    ) -> None:
        """Initialize the control plane.

        Args:
            session_factory: Factory for per-unit sessions. Required when
                use_transactions is True.
            use_transactions: Commit each unit of work independently.
            session: Caller-owned session. Required when use_transactions
                is False.

        Raises:
            ValueError: If the arguments do not match the mode.
        """
        if use_transactions and session_factory is None:
            raise ValueError("session_factory is required when use_transactions is True")
        if not use_transactions and session is None:
            raise ValueError("session is required when use_transactions is False")

        self._session_factory = session_factory
        self._use_transactions = use_transactions
        self._session = session

    @property
    def uses_transactions(self) -> bool:
        return self._use_transactions

    @contextmanager
    def unit(self) -> Iterator[Session]:
        """Open one short unit of work.

        Yields:
            Session for registry reads and writes.

        Raises:
            DatabaseError: If a database operation fails. The original
                SQLAlchemy error is available as ``original_error``.
        """
        if not self._use_transactions:
            try:
                yield self._session
                self._session.flush()
            except SQLAlchemyError as e:
                raise DatabaseError("Control-plane operation failed", e) from e
            return

        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise DatabaseError("Control-plane operation failed", e) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
