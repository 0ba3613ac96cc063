"""Connection pool construction for the read and write database endpoints."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from psycopg_pool import ConnectionPool

from .config import Settings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Pools:
    """Independently sized pools for read-oriented and write-oriented traffic."""

    read: ConnectionPool
    write: ConnectionPool

    def close(self) -> None:
        for pool in (self.write, self.read):
            pool.close()


def _open_pool(name: str, conninfo: str, min_size: int, max_size: int, timeout: float) -> ConnectionPool:
    pool = ConnectionPool(
        conninfo,
        min_size=min_size,
        max_size=max(min_size, max_size),
        timeout=timeout,
        name=name,
        open=False,
    )
    pool.open()
    logger.info("opened %s pool (min=%d, max=%d)", name, min_size, max_size)
    return pool


def open_pools(settings: Settings) -> Pools:
    """Open the read pool, then the write pool, closing the first if the second fails."""
    read = _open_pool(
        "users-read",
        settings.db_read_url,
        settings.db_read_min_conn,
        settings.db_read_max_conn,
        settings.db_pool_timeout_seconds,
    )
    try:
        write = _open_pool(
            "users-write",
            settings.db_write_url,
            settings.db_write_min_conn,
            settings.db_write_max_conn,
            settings.db_pool_timeout_seconds,
        )
    except Exception:
        read.close()
        raise
    return Pools(read=read, write=write)
