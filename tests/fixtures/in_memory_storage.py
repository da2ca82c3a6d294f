"""In-memory implementation of KeyValueStore for testing."""

from __future__ import annotations

import json
import time
from typing import Any, List, Mapping, Optional

from chainpay.infrastructure.storage import KeyValueStore


class InMemoryKeyValueStore(KeyValueStore):
    """In-memory implementation of KeyValueStore for fast testing.

    Registered scripts are executed by Python ports of the Lua scripts. Each
    port runs without awaiting, so it is atomic with respect to other
    coroutines, like a script inside Redis.
    """

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._sorted_sets: dict[str, list[tuple[str, float]]] = {}
        self._expiries: dict[str, float] = {}
        self._script_cache: dict[str, str] = {}
        self._script_sources: dict[str, str] = {}

    def _purge_expired(self, key: str) -> None:
        deadline = self._expiries.get(key)
        if deadline is not None and time.monotonic() >= deadline:
            self._data.pop(key, None)
            self._expiries.pop(key, None)

    async def get(self, key: str) -> Optional[str]:
        self._purge_expired(key)
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self._expiries.pop(key, None)

    async def zadd(self, key: str, mapping: Mapping[str, float]) -> int:
        """Add members to sorted set."""
        if key not in self._sorted_sets:
            self._sorted_sets[key] = []

        added = 0
        for member, score in mapping.items():
            member_exists = any(m == member for m, _ in self._sorted_sets[key])
            self._sorted_sets[key] = [
                (m, s) for m, s in self._sorted_sets[key] if m != member
            ]
            self._sorted_sets[key].append((member, score))
            if not member_exists:
                added += 1
            # Keep sorted by score (descending)
            self._sorted_sets[key].sort(key=lambda x: x[1], reverse=True)

        return added

    async def incr_with_ttl(self, key: str, ttl_seconds: int) -> int:
        self._purge_expired(key)
        value = int(self._data.get(key, "0")) + 1
        self._data[key] = str(value)
        self._expiries.setdefault(key, time.monotonic() + ttl_seconds)
        return value

    async def register_script(self, name: str, script: str) -> str:
        """Register a script (return mock SHA1)."""
        self._script_cache[name] = f"sha1_{name}"
        self._script_sources[name] = script
        return f"sha1_{name}"

    async def run_script(self, name: str, keys: List[str], args: List[str]) -> Any:
        """Execute script by name."""
        if name not in self._script_cache:
            raise ValueError(f"Script '{name}' not registered")
        if name == "claim_signature":
            return self._execute_claim_signature(keys, args)
        if name == "transition_status":
            return self._execute_transition_status(keys, args)
        if name == "acquire_fulfillment_lease":
            return self._execute_acquire_fulfillment_lease(keys, args)
        if name == "release_fulfillment_lease":
            return self._execute_release_fulfillment_lease(keys, args)
        raise NotImplementedError(f"Script not implemented: {name}")

    def _score(self, key: str, member: str) -> Optional[float]:
        for m, score in self._sorted_sets.get(key, []):
            if m == member:
                return score
        return None

    def _execute_claim_signature(self, keys: List[str], args: List[str]) -> list[Any]:
        """Execute claim_signature script logic."""
        intent_key, signature_key, expiry_index = keys
        intent_id, signature, counterparty, now_ts, now_iso, claimable = args

        intent_raw = self._data.get(intent_key)
        if not intent_raw:
            return [2, ""]

        owner = self._data.get(signature_key)
        if owner and owner != intent_id:
            return [3, owner]

        intent = json.loads(intent_raw)
        bound = intent.get("claimed_signature")
        if bound:
            return [1, intent_raw] if bound == signature else [0, intent_raw]

        if intent.get("status") not in claimable.split(","):
            return [0, intent_raw]

        expires_ts = self._score(expiry_index, intent_id)
        if expires_ts is not None and float(now_ts) > expires_ts:
            return [4, intent_raw]

        intent["claimed_signature"] = signature
        intent["counterparty_address"] = counterparty
        intent["status"] = "VERIFIED"
        intent["verified_at"] = now_iso
        intent["updated_at"] = now_iso

        new_raw = json.dumps(intent)
        self._data[signature_key] = intent_id
        self._data[intent_key] = new_raw
        return [1, new_raw]

    def _execute_transition_status(
        self, keys: List[str], args: List[str]
    ) -> list[Any]:
        """Execute transition_status script logic."""
        intent_key = keys[0]
        sources, target, fields_json = args

        intent_raw = self._data.get(intent_key)
        if not intent_raw:
            return [2, ""]

        intent = json.loads(intent_raw)
        if intent.get("status") not in sources.split(","):
            return [0, intent_raw]

        intent["status"] = target
        intent.update(json.loads(fields_json))

        new_raw = json.dumps(intent)
        self._data[intent_key] = new_raw
        return [1, new_raw]

    def _execute_acquire_fulfillment_lease(
        self, keys: List[str], args: List[str]
    ) -> list[Any]:
        """Execute acquire_fulfillment_lease script logic."""
        intent_key, lease_key = keys
        lease_id, ttl_ms = args

        intent_raw = self._data.get(intent_key)
        if not intent_raw:
            return [2, ""]

        if json.loads(intent_raw).get("status") != "VERIFIED":
            return [0, intent_raw]

        self._purge_expired(lease_key)
        if lease_key in self._data:
            return [3, intent_raw]

        self._data[lease_key] = lease_id
        self._expiries[lease_key] = time.monotonic() + int(ttl_ms) / 1000
        return [1, intent_raw]

    def _execute_release_fulfillment_lease(
        self, keys: List[str], args: List[str]
    ) -> list[Any]:
        """Execute release_fulfillment_lease script logic."""
        lease_key = keys[0]
        self._purge_expired(lease_key)
        if self._data.get(lease_key) == args[0]:
            del self._data[lease_key]
            self._expiries.pop(lease_key, None)
            return [1, ""]
        return [0, ""]

    def clear(self) -> None:
        """Clear all data (useful for test teardown)."""
        self._data.clear()
        self._sorted_sets.clear()
        self._expiries.clear()
        self._script_cache.clear()
        self._script_sources.clear()
