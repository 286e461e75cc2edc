# ============================================================================
# ARTIFACT SINK
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core - Relational write sink for finished artifacts
# PURPOSE: Upsert fetched artifacts into the transcripts table
# CREATED: 18 OCT 2026
# ============================================================================
"""
Artifact Sink

Writes completed artifacts into the relational store that downstream
search and summary consumers read. Rows are addressed by
(ticker, year, quarter) with upsert semantics.

The sink is a write target the orchestrator does not own: a failed upsert
is the caller's to log, it never fails the item that produced it.
"""

import logging
from datetime import datetime
from typing import Optional, Protocol

from psycopg import sql
from psycopg_pool import AsyncConnectionPool

from core.models import Artifact
from .database import TABLE_TRANSCRIPTS

logger = logging.getLogger(__name__)


class ArtifactSink(Protocol):
    """Anything that can durably accept a finished artifact."""

    async def upsert(self, artifact: Artifact) -> None:
        ...


def _parse_call_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.warning(f"Invalid call date '{value}', storing NULL")
        return None


class PostgresArtifactSink:
    """ArtifactSink backed by the transcripts table."""

    def __init__(self, pool: AsyncConnectionPool):
        self.pool = pool

    async def ensure_schema(self) -> None:
        """Create the transcripts table if it does not exist."""
        async with self.pool.connection() as conn:
            await conn.execute(
                sql.SQL("""
                CREATE TABLE IF NOT EXISTS {} (
                    id BIGSERIAL PRIMARY KEY,
                    ticker VARCHAR(16) NOT NULL,
                    year INTEGER NOT NULL,
                    quarter INTEGER NOT NULL CHECK (quarter BETWEEN 1 AND 4),
                    call_date TIMESTAMP NULL,
                    full_transcript TEXT NOT NULL,
                    company_name VARCHAR(255) NULL,
                    created_at TIMESTAMP NOT NULL DEFAULT NOW(),
                    updated_at TIMESTAMP NOT NULL DEFAULT NOW(),
                    UNIQUE (ticker, year, quarter)
                )
                """).format(TABLE_TRANSCRIPTS)
            )
        logger.info("Transcripts table ready")

    async def upsert(self, artifact: Artifact) -> None:
        """
        Insert or update the row for (ticker, year, quarter).

        Raises:
            psycopg.Error: on database failure (callers contain it)
        """
        async with self.pool.connection() as conn:
            await conn.execute(
                sql.SQL("""
                INSERT INTO {} (
                    ticker, year, quarter, call_date, full_transcript,
                    company_name, updated_at
                ) VALUES (
                    %(ticker)s, %(year)s, %(quarter)s, %(call_date)s,
                    %(full_transcript)s, %(company_name)s, NOW()
                )
                ON CONFLICT (ticker, year, quarter) DO UPDATE SET
                    call_date = EXCLUDED.call_date,
                    full_transcript = EXCLUDED.full_transcript,
                    company_name = COALESCE(EXCLUDED.company_name, {}.company_name),
                    updated_at = NOW()
                """).format(TABLE_TRANSCRIPTS, sql.Identifier("transcripts")),
                {
                    "ticker": artifact.item,
                    "year": artifact.period.year,
                    "quarter": artifact.period.quarter,
                    "call_date": _parse_call_date(artifact.call_date),
                    "full_transcript": artifact.payload,
                    "company_name": artifact.company_name,
                },
            )
        logger.info(f"Artifact {artifact.cache_key} saved to database")
