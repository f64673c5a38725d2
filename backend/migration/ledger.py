"""Persistent legacy → new identity ledger.

Why:
    Legacy and new user ids are never comparable, so without a durable table the
    engine has to rediscover already-migrated teammates by joining on e-mail
    (O(coaches × users) and fragile when e-mails repeat). The ledger records
    every (legacy id → new id) pair at the end of a successful migration so later
    runs resolve teammates with a keyed lookup. The e-mail join stays as the
    fallback for pairs recorded before the ledger existed.

Invariant:
    A legacy id is written once. Re-recording the same pair is a no-op; a
    conflicting pair is ignored and logged, never overwritten.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional, Protocol

try:  # pragma: no cover - import guard for optional dependency
    import psycopg  # type: ignore
except Exception:  # pragma: no cover
    psycopg = None  # type: ignore


logger = logging.getLogger("coachplan.migration.ledger")


class IdentityLedger(Protocol):
    def lookup(self, legacy_ids: Iterable[str]) -> Dict[str, str]: ...

    def record(self, legacy_id: str, new_id: str, email: Optional[str] = None) -> None: ...


class InMemoryIdentityLedger:
    """Dictionary-backed ledger for tests and single-process runs."""

    def __init__(self, pairs: Optional[Dict[str, str]] = None) -> None:
        self.pairs: Dict[str, str] = dict(pairs or {})

    def lookup(self, legacy_ids: Iterable[str]) -> Dict[str, str]:
        return {lid: self.pairs[lid] for lid in legacy_ids if lid in self.pairs}

    def record(self, legacy_id: str, new_id: str, email: Optional[str] = None) -> None:
        existing = self.pairs.get(legacy_id)
        if existing is not None and existing != new_id:
            logger.warning("Ledger keeps %s -> %s (ignored %s)", legacy_id, existing, new_id)
            return
        self.pairs[legacy_id] = new_id


class PostgresIdentityLedger:
    """Ledger stored in `public.legacy_user_map` (created when missing)."""

    def __init__(self, dsn: str) -> None:
        if psycopg is None:  # pragma: no cover - optional dependency
            raise RuntimeError("psycopg_not_installed")
        self._dsn = dsn
        self._ensured = False

    def _ensure_table(self, conn: "psycopg.Connection") -> None:
        if self._ensured:
            return
        with conn.cursor() as cur:  # type: ignore[attr-defined]
            cur.execute(
                """
                create table if not exists public.legacy_user_map (
                  legacy_id text primary key,
                  new_id text not null,
                  email text null,
                  recorded_at_utc timestamptz not null default now()
                )
                """
            )
        self._ensured = True

    def lookup(self, legacy_ids: Iterable[str]) -> Dict[str, str]:
        ids = sorted({lid for lid in legacy_ids if lid})
        if not ids:
            return {}
        with psycopg.connect(self._dsn) as conn:  # type: ignore[union-attr]
            self._ensure_table(conn)
            with conn.cursor() as cur:  # type: ignore[attr-defined]
                cur.execute(
                    "select legacy_id, new_id from public.legacy_user_map where legacy_id = any(%s)",
                    (ids,),
                )
                rows = cur.fetchall()
        return {row[0]: row[1] for row in rows}

    def record(self, legacy_id: str, new_id: str, email: Optional[str] = None) -> None:
        with psycopg.connect(self._dsn) as conn:  # type: ignore[union-attr]
            self._ensure_table(conn)
            with conn.cursor() as cur:  # type: ignore[attr-defined]
                cur.execute(
                    """
                    insert into public.legacy_user_map (legacy_id, new_id, email)
                    values (%s, %s, %s)
                    on conflict (legacy_id) do nothing
                    returning new_id
                    """,
                    (legacy_id, new_id, email),
                )
                inserted = cur.fetchone()
                if inserted is None:
                    cur.execute(
                        "select new_id from public.legacy_user_map where legacy_id = %s",
                        (legacy_id,),
                    )
                    row = cur.fetchone()
                    if row and row[0] != new_id:
                        logger.warning("Ledger keeps %s -> %s (ignored %s)", legacy_id, row[0], new_id)


__all__ = ["IdentityLedger", "InMemoryIdentityLedger", "PostgresIdentityLedger"]
