"""Capture EXPLAIN (FORMAT JSON) plans from a running PostgreSQL server."""

from typing import List, Dict, Any, Sequence, Tuple
from pathlib import Path
import json
import logging

import psycopg2
from psycopg2 import sql

from ..config.config import DatabaseConfig
from ..utils.logging import plan_logger

logger = logging.getLogger(__name__)


class CaptureError(RuntimeError):
    """Raised when a plan cannot be captured from the server."""


class PlanCapture:
    """Runs EXPLAIN for queries under named planner setting modes.

    Each mode is a mapping of planner settings (``enable_left_deep_join``,
    ``geqo``, ...) applied with ``SET LOCAL`` inside a transaction that is
    rolled back after the plan is read, so modes never leak into each other.
    """

    def __init__(self, config: DatabaseConfig, modes: Dict[str, Dict[str, str]]):
        """Initialize plan capture.

        Args:
            config: Connection settings
            modes: Mode name to planner settings
        """
        self.config = config
        self.modes = modes
        self.connection = None

    def connect(self) -> None:
        """Open the connection to the server."""
        try:
            logger.info(
                f"Connecting to PostgreSQL database '{self.config.database}' "
                f"at {self.config.host}:{self.config.port}"
            )
            self.connection = psycopg2.connect(
                host=self.config.host,
                port=self.config.port,
                dbname=self.config.database,
                user=self.config.user,
                password=self.config.password,
                connect_timeout=self.config.connect_timeout,
            )
        except psycopg2.Error as e:
            logger.error(f"Failed to connect to PostgreSQL: {e}")
            raise CaptureError(f"PostgreSQL connection failed: {e}") from e

    def disconnect(self) -> None:
        """Close the connection."""
        if self.connection is not None:
            self.connection.close()
            self.connection = None
            logger.info("Disconnected from PostgreSQL")

    def __enter__(self) -> "PlanCapture":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    def mode_settings(self, mode: str) -> Dict[str, str]:
        """Return the settings of a mode.

        Raises:
            CaptureError: If the mode is not configured
        """
        settings = self.modes.get(mode)
        if settings is None:
            known = ", ".join(sorted(self.modes.keys()))
            raise CaptureError(f"Unknown mode '{mode}' (configured: {known})")
        return settings

    def explain(self, query: str, mode: str) -> Any:
        """Run EXPLAIN (FORMAT JSON) for a query under a mode.

        Args:
            query: SQL query text; a trailing semicolon is dropped
            mode: Configured mode name

        Returns:
            Decoded plan document (the JSON array returned by the server)
        """
        if self.connection is None:
            raise CaptureError("Not connected to PostgreSQL")
        settings = self.mode_settings(mode)
        statement = "EXPLAIN (FORMAT JSON) " + _clean_query(query)
        conn = self.connection
        try:
            with conn.cursor() as cursor:
                for name, value in settings.items():
                    cursor.execute(
                        sql.SQL("SET LOCAL {} = {}").format(
                            sql.Identifier(name), sql.Literal(value)
                        )
                    )
                cursor.execute(statement)
                row = cursor.fetchone()
        except psycopg2.Error as e:
            plan_logger(__name__, mode=mode).error(f"EXPLAIN failed: {e}")
            raise CaptureError(f"EXPLAIN failed under mode '{mode}': {e}") from e
        finally:
            conn.rollback()

        if row is None:
            raise CaptureError("EXPLAIN returned no rows")
        plan = row[0]
        if isinstance(plan, str):
            plan = json.loads(plan)
        return plan

    def capture(self, query_id: str, query: str, mode: str, out_dir: Path) -> Path:
        """Capture one plan and write it to ``<out_dir>/<query_id>.<mode>.json``."""
        log = plan_logger(__name__, query_id=query_id, mode=mode)
        plan = self.explain(query, mode)
        out_dir.mkdir(parents=True, exist_ok=True)
        out_path = out_dir / f"{query_id}.{mode}.json"
        out_path.write_text(json.dumps(plan, indent=2) + "\n", encoding="utf-8")
        log.info(f"Captured plan to {out_path}")
        return out_path

    def capture_all(
        self,
        queries: Sequence[Tuple[str, str]],
        modes: Sequence[str],
        out_dir: Path,
    ) -> List[Path]:
        """Capture every query under every mode.

        Args:
            queries: (query_id, sql) pairs
            modes: Mode names
            out_dir: Output directory

        Returns:
            Written plan file paths, queries outermost
        """
        for mode in modes:
            self.mode_settings(mode)
        written: List[Path] = []
        for query_id, query in queries:
            for mode in modes:
                written.append(self.capture(query_id, query, mode, out_dir))
        return written


def _clean_query(query: str) -> str:
    clean = query.strip()
    while clean.endswith(";"):
        clean = clean[:-1].rstrip()
    return clean


def read_query_file(path: Path) -> Tuple[str, str]:
    """Read a query file; the file stem is the query id."""
    text = path.read_text(encoding="utf-8")
    return path.stem, text
