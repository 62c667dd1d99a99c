"""
Authorization audit trail.

Every evaluation produces exactly one AuditEntry. Sinks persist entries;
the AuditDispatcher decides whether the caller waits for the write and
guarantees that a failed write never reaches the caller.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
from typing import Any

from loguru import logger

from harbor_core.config import settings
from harbor_core.domain.auth import AuditEntry
from harbor_core.domain.exceptions import AuditWriteError
from harbor_core.domain.interfaces import AuditSinkProtocol
from harbor_core.infrastructure.postgres import ConnectionFactory, get_db_connection

# Transaction-scoped advisory lock key that serializes appends to the chain head.
AUDIT_CHAIN_LOCK_ID = 0x48415242


class LogAuditSink:
    """Writes audit entries as structured loguru records.

    Records are bound with ``audit=True`` so the logging setup can route
    them to their own serialized sink.
    """

    async def append(self, entry: AuditEntry) -> None:
        payload = entry.model_dump(mode="json")
        logger.bind(audit=True, **payload).info(
            f"[{entry.request_id}] authz {entry.effect.value} "
            f"principal={entry.principal_id} action={entry.action} "
            f"error={entry.error_code or '-'}"
        )


class PostgresAuditSink:
    """
    Append-only audit table with tamper-evident hash chaining.

    Each row stores the SHA-256 of its canonical JSON plus the previous
    row's hash, so editing or deleting a row breaks the chain from that
    point on. The schema lives in scripts/init-db.sql.

    Usage:
        sink = PostgresAuditSink()
        await sink.append(entry)
        ok, errors = await sink.verify_chain_integrity()
    """

    def __init__(self, connect: ConnectionFactory | None = None):
        self._connect = connect or get_db_connection

    @staticmethod
    def _entry_data(entry: AuditEntry) -> dict[str, Any]:
        """Fields covered by the hash (everything except the hash columns)."""
        return {
            "id": entry.id,
            "request_id": entry.request_id,
            "principal_id": entry.principal_id,
            "trust_domain": entry.trust_domain.value if entry.trust_domain else None,
            "email": entry.email,
            "action": entry.action,
            "resource": entry.resource,
            "effect": entry.effect.value,
            "error_code": entry.error_code,
            "ip_address": entry.ip_address,
            "user_agent": entry.user_agent,
            "timestamp": entry.timestamp.isoformat(),
        }

    @staticmethod
    def _compute_entry_hash(entry_data: dict[str, Any], previous_hash: str | None) -> str:
        """
        Compute SHA-256 of entry data + previous hash.

        Uses canonical JSON serialization (sorted keys) for deterministic hashing.
        """
        canonical = json.dumps(entry_data, sort_keys=True, default=str)
        hash_input = (previous_hash or "") + canonical
        return hashlib.sha256(hash_input.encode()).hexdigest()

    async def _get_last_entry_hash(self, cursor) -> str | None:
        """Hash of the newest entry.

        Takes the chain advisory lock first, so concurrent appends (and the
        first append to an empty table) see each other's committed head.
        """
        await cursor.execute("SELECT pg_advisory_xact_lock(%s)", (AUDIT_CHAIN_LOCK_ID,))
        await cursor.execute(
            """
            SELECT entry_hash
            FROM authz_audit_log
            ORDER BY sequence_number DESC
            LIMIT 1
            """
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    async def append(self, entry: AuditEntry) -> None:
        """
        Insert one entry at the head of the chain.

        Raises:
            AuditWriteError: If the entry could not be written.
        """
        entry_data = self._entry_data(entry)
        try:
            async with await self._connect() as conn:
                async with conn.cursor() as cursor:
                    previous_hash = await self._get_last_entry_hash(cursor)
                    entry_hash = self._compute_entry_hash(entry_data, previous_hash)
                    await cursor.execute(
                        """
                        INSERT INTO authz_audit_log
                        (id, request_id, principal_id, trust_domain, email,
                         action, resource, effect, error_code, ip_address,
                         user_agent, timestamp, previous_hash, entry_hash)
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                        """,
                        (
                            entry.id,
                            entry.request_id,
                            entry.principal_id,
                            entry_data["trust_domain"],
                            entry.email,
                            entry.action,
                            entry.resource,
                            entry.effect.value,
                            entry.error_code,
                            entry.ip_address,
                            entry.user_agent,
                            entry.timestamp,
                            previous_hash,
                            entry_hash,
                        ),
                    )
                await conn.commit()
        except Exception as e:
            raise AuditWriteError(f"Failed to write audit entry {entry.id}: {e}") from e

        logger.debug(f"[{entry.request_id}] Audit entry {entry.id} written")

    async def verify_chain_integrity(self) -> tuple[bool, list[str]]:
        """
        Verify the hash chain of the whole audit table.

        Returns:
            Tuple of (is_valid, list of error messages)
        """
        errors: list[str] = []
        try:
            async with await self._connect() as conn:
                async with conn.cursor() as cursor:
                    await cursor.execute(
                        """
                        SELECT id, request_id, principal_id, trust_domain, email,
                               action, resource, effect, error_code, ip_address,
                               user_agent, timestamp, previous_hash, entry_hash
                        FROM authz_audit_log
                        ORDER BY sequence_number ASC
                        """
                    )
                    rows = await cursor.fetchall()
        except Exception as e:
            logger.error(f"Failed to verify audit chain: {e}")
            return False, [f"Verification failed: {e}"]

        expected_previous_hash: str | None = None
        for row in rows:
            entry_id = row[0]
            stored_previous_hash = row[12]
            stored_entry_hash = row[13]

            if stored_previous_hash != expected_previous_hash:
                errors.append(
                    f"Entry {entry_id}: previous_hash mismatch. "
                    f"Expected '{expected_previous_hash}', got '{stored_previous_hash}'"
                )

            entry_data = {
                "id": row[0],
                "request_id": row[1],
                "principal_id": row[2],
                "trust_domain": row[3],
                "email": row[4],
                "action": row[5],
                "resource": row[6],
                "effect": row[7],
                "error_code": row[8],
                "ip_address": row[9],
                "user_agent": row[10],
                "timestamp": row[11].isoformat() if row[11] else None,
            }
            computed_hash = self._compute_entry_hash(entry_data, stored_previous_hash)
            if computed_hash != stored_entry_hash:
                errors.append(
                    f"Entry {entry_id}: entry_hash mismatch. "
                    f"Computed '{computed_hash}', stored '{stored_entry_hash}'"
                )

            expected_previous_hash = stored_entry_hash

        return len(errors) == 0, errors


class AuditDispatcher:
    """Hands entries to a sink without letting audit trouble alter a decision.

    In ``async`` mode the write runs as a tracked background task and the
    caller returns immediately. In ``sync`` mode the caller waits at most
    ``timeout`` seconds. Either way failures are logged, never raised.
    """

    def __init__(
        self,
        sink: AuditSinkProtocol,
        mode: str | None = None,
        timeout_seconds: float | None = None,
    ):
        self.sink = sink
        self.mode = mode or settings.AUDIT_MODE
        self.timeout = settings.AUDIT_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        self._pending: set[asyncio.Task] = set()

        if self.mode not in ("async", "sync"):
            raise ValueError(f"Unknown audit mode: {self.mode}")

    async def _write(self, entry: AuditEntry) -> None:
        try:
            await asyncio.wait_for(self.sink.append(entry), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(
                f"[{entry.request_id}] Audit write timed out after {self.timeout}s "
                f"for entry {entry.id}"
            )
        except Exception as e:
            logger.error(f"[{entry.request_id}] Failed to write audit entry {entry.id}: {e}")

    async def emit(self, entry: AuditEntry) -> None:
        """Record one entry according to the configured mode."""
        if self.mode == "sync":
            await self._write(entry)
            return

        task = asyncio.create_task(self._write(entry))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for outstanding background writes (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._pending)


def build_audit_sink(kind: str | None = None) -> AuditSinkProtocol:
    """Construct the sink named by AUDIT_SINK."""
    kind = kind or settings.AUDIT_SINK
    if kind == "log":
        return LogAuditSink()
    if kind == "postgres":
        return PostgresAuditSink()
    raise ValueError(f"Unknown audit sink: {kind}")
