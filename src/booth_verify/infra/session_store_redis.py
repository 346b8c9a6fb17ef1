"""Implementação de SessionStore usando Redis (produção).

Layout de chaves (prefixo configurável):
- {prefix}session:{id}            documento JSON (sem synced_version)
- {prefix}active:{identity}:{booth} set de ids ativos do par
- {prefix}active_by_timeout       sorted set id -> timeout_at (epoch)
- {prefix}unsynced                set de ids com versão não sincronizada
- {prefix}synced                  hash id -> última versão sincronizada

Toda escrita passa por scripts Lua: documento e índices mudam juntos.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from booth_verify.domain.errors import (
    DuplicateActiveSession,
    NotFound,
    SessionStoreError,
    VersionConflict,
)
from booth_verify.domain.models import SessionRecord
from booth_verify.domain.protocols.session_store import SessionStore
from booth_verify.observability.logging import get_logger, short_id

logger: logging.Logger = get_logger(__name__)

# KEYS: doc, active pair set, timeout zset, unsynced set, synced hash
# ARGV: expected_version, doc json, session_id, is_active, timeout score
# Retorno ok: {'ok', versão[, synced_version]} lido na mesma execução
_PUT_LUA = """
local current = redis.call('GET', KEYS[1])
local expected = tonumber(ARGV[1])
if current then
    local version = tonumber(cjson.decode(current)['sync_version'])
    if expected == 0 or version ~= expected then
        return {'conflict', tostring(version)}
    end
elseif expected ~= 0 then
    return {'not_found', '0'}
elseif ARGV[4] == '1' and redis.call('SCARD', KEYS[2]) > 0 then
    return {'duplicate', '0'}
end
redis.call('SET', KEYS[1], ARGV[2])
if ARGV[4] == '1' then
    redis.call('SADD', KEYS[2], ARGV[3])
    redis.call('ZADD', KEYS[3], ARGV[5], ARGV[3])
else
    redis.call('SREM', KEYS[2], ARGV[3])
    redis.call('ZREM', KEYS[3], ARGV[3])
end
redis.call('SADD', KEYS[4], ARGV[3])
local synced = redis.call('HGET', KEYS[5], ARGV[3])
if synced then
    return {'ok', tostring(expected + 1), synced}
end
return {'ok', tostring(expected + 1)}
"""

# KEYS: doc, synced hash, unsynced set; ARGV: version, session_id
_MARK_SYNCED_LUA = """
local current = redis.call('GET', KEYS[1])
if not current then
    return 0
end
if tonumber(cjson.decode(current)['sync_version']) ~= tonumber(ARGV[1]) then
    return 0
end
redis.call('HSET', KEYS[2], ARGV[2], ARGV[1])
redis.call('SREM', KEYS[3], ARGV[2])
return 1
"""


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


class RedisSessionStore(SessionStore):
    """Armazenamento em Redis (redis.asyncio) para produção."""

    def __init__(self, redis_client: Any, prefix: str = "booth_verify:") -> None:
        self._redis = redis_client
        self._prefix = prefix

    def _doc_key(self, session_id: str) -> str:
        return f"{self._prefix}session:{session_id}"

    def _pair_key(self, identity_ref: str, booth_ref: str) -> str:
        return f"{self._prefix}active:{identity_ref}:{booth_ref}"

    @property
    def _timeout_key(self) -> str:
        return f"{self._prefix}active_by_timeout"

    @property
    def _unsynced_key(self) -> str:
        return f"{self._prefix}unsynced"

    @property
    def _synced_key(self) -> str:
        return f"{self._prefix}synced"

    async def get(self, session_id: str) -> SessionRecord:
        try:
            payload = await self._redis.get(self._doc_key(session_id))
            synced = await self._redis.hget(self._synced_key, session_id)
        except Exception as e:
            logger.error(
                "Failed to load session from Redis",
                extra={"session_id": short_id(session_id), "error": type(e).__name__},
            )
            raise SessionStoreError(
                f"Redis load failed: {type(e).__name__}", session_id=session_id
            ) from e

        if not payload:
            logger.debug("Session not found (Redis)", extra={"session_id": short_id(session_id)})
            raise NotFound("session not found", session_id=session_id)

        record = SessionRecord.model_validate_json(_text(payload))
        return record.model_copy(
            update={"synced_version": int(_text(synced)) if synced is not None else None}
        )

    async def put(self, record: SessionRecord, expected_version: int) -> SessionRecord:
        stored = record.model_copy(
            update={"sync_version": expected_version + 1, "synced_version": None}
        )
        payload = stored.model_dump_json(exclude={"synced_version"})

        try:
            reply = await self._redis.eval(
                _PUT_LUA,
                5,
                self._doc_key(record.session_id),
                self._pair_key(record.identity_ref, record.booth_ref),
                self._timeout_key,
                self._unsynced_key,
                self._synced_key,
                expected_version,
                payload,
                record.session_id,
                "1" if stored.is_active else "0",
                stored.timeout_at.timestamp(),
            )
        except Exception as e:
            logger.error(
                "Failed to save session to Redis",
                extra={"session_id": short_id(record.session_id), "error": type(e).__name__},
            )
            raise SessionStoreError(
                f"Redis save failed: {type(e).__name__}", session_id=record.session_id
            ) from e

        status, version = _text(reply[0]), reply[1]
        if status == "conflict":
            raise VersionConflict(
                f"expected version {expected_version}, found {_text(version)}",
                session_id=record.session_id,
                state=record.state,
                attempt_count=record.attempt_count,
            )
        if status == "not_found":
            raise NotFound("session not found", session_id=record.session_id)
        if status == "duplicate":
            raise DuplicateActiveSession(
                "active session exists for identity and booth",
                session_id=record.session_id,
                state=record.state,
            )

        if len(reply) > 2:
            stored = stored.model_copy(update={"synced_version": int(_text(reply[2]))})

        logger.debug(
            "Session saved (Redis)",
            extra={
                "session_id": short_id(record.session_id),
                "sync_version": stored.sync_version,
                "state": stored.state,
            },
        )
        return stored

    async def _load_many(self, session_ids: list[Any]) -> list[SessionRecord]:
        records: list[SessionRecord] = []
        for raw_id in session_ids:
            try:
                records.append(await self.get(_text(raw_id)))
            except NotFound:
                continue
        return records

    async def find_active(self, identity_ref: str, booth_ref: str) -> list[SessionRecord]:
        try:
            ids = await self._redis.smembers(self._pair_key(identity_ref, booth_ref))
        except Exception as e:
            logger.error("Failed to query active sessions", extra={"error": type(e).__name__})
            raise SessionStoreError(f"Redis query failed: {type(e).__name__}") from e
        return [r for r in await self._load_many(sorted(ids or ())) if r.is_active]

    async def find_expired(self, now: datetime, limit: int = 100) -> list[SessionRecord]:
        try:
            ids = await self._redis.zrangebyscore(
                self._timeout_key, "-inf", now.timestamp(), start=0, num=limit
            )
        except Exception as e:
            logger.error("Failed to query expired sessions", extra={"error": type(e).__name__})
            raise SessionStoreError(f"Redis query failed: {type(e).__name__}") from e
        return [r for r in await self._load_many(list(ids or ())) if r.is_active]

    async def list_unsynced(self, limit: int = 100) -> list[SessionRecord]:
        try:
            ids = await self._redis.smembers(self._unsynced_key)
        except Exception as e:
            logger.error("Failed to query unsynced sessions", extra={"error": type(e).__name__})
            raise SessionStoreError(f"Redis query failed: {type(e).__name__}") from e
        selected = sorted(_text(i) for i in ids or ())[:limit]
        return [r for r in await self._load_many(selected) if not r.is_synced]

    async def mark_synced(self, session_id: str, version: int) -> bool:
        try:
            marked = await self._redis.eval(
                _MARK_SYNCED_LUA,
                3,
                self._doc_key(session_id),
                self._synced_key,
                self._unsynced_key,
                version,
                session_id,
            )
        except Exception as e:
            logger.error(
                "Failed to mark session synced",
                extra={"session_id": short_id(session_id), "error": type(e).__name__},
            )
            raise SessionStoreError(
                f"Redis sync mark failed: {type(e).__name__}", session_id=session_id
            ) from e
        return bool(int(marked))
