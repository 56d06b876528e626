"""Persistence layer for dripflow workflows and executions.

``get_repository`` turns a database URL into a storage backend:

* no URL: a process-local :class:`InMemoryWorkflowRepository`
* ``sqlite:///var/lib/dripflow.db`` (absolute) or ``sqlite://dripflow.db``
  (relative to the working directory): :class:`SQLiteWorkflowRepository`
* ``postgres://`` or ``postgresql://``: :class:`PostgresWorkflowRepository`

The URL comes from the ``database_url`` argument or the loaded configuration,
which already honours ``DRIPFLOW_DATABASE_URL`` and ``DATABASE_URL``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..config import DripflowConfig, load_config
from .inmemory import InMemoryWorkflowRepository
from .postgres import PostgresWorkflowRepository
from .repository import WorkflowRepository
from .sqlite import SQLiteWorkflowRepository

SQLITE_MEMORY = ":memory:"

_repository_instance: WorkflowRepository | None = None


def sqlite_path(url: str) -> str:
    """Return the database file a ``sqlite://`` URL points at.

    Missing parent directories are created.
    """
    target = url.split("://", 1)[1]
    if target.lstrip("/") == SQLITE_MEMORY:
        return SQLITE_MEMORY
    if not target:
        raise ValueError(f"No database file in {url!r}")
    path = Path(target).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return str(path)


def open_repository(database_url: str) -> WorkflowRepository:
    """Create a new repository for ``database_url`` without caching it."""
    scheme, sep, _ = database_url.partition("://")
    if not sep:
        raise ValueError(f"Database URL has no scheme: {database_url}")
    scheme = scheme.lower()
    if scheme == "sqlite":
        return SQLiteWorkflowRepository(sqlite_path(database_url))
    if scheme in ("postgres", "postgresql"):
        return PostgresWorkflowRepository(database_url)
    raise ValueError(f"Unsupported database backend: {database_url}")


def get_repository(
    database_url: Optional[str] = None, config: Optional[DripflowConfig] = None
) -> WorkflowRepository:
    """Return the process-wide repository, creating it on first use.

    Passing ``database_url`` or ``config`` always builds a fresh backend and
    makes it the shared one.
    """
    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    url = database_url or (config or load_config()).database_url
    _repository_instance = (
        open_repository(url) if url else InMemoryWorkflowRepository()
    )
    return _repository_instance


__all__ = [
    "WorkflowRepository",
    "SQLiteWorkflowRepository",
    "PostgresWorkflowRepository",
    "InMemoryWorkflowRepository",
    "get_repository",
    "open_repository",
    "sqlite_path",
]
