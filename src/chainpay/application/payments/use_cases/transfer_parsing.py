"""Pure helpers that read balance movements out of ``jsonParsed`` transactions.

These functions contain no I/O so the scanner and the verifier compute deltas
the same way, and both can be tested against canned RPC payloads.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable, Optional

LAMPORTS_PER_SOL = Decimal(1_000_000_000)


def _meta(tx: dict[str, Any]) -> dict[str, Any]:
    return tx.get("meta") or {}


def transaction_failed(tx: dict[str, Any]) -> bool:
    return _meta(tx).get("err") is not None


def block_time(tx: dict[str, Any]) -> Optional[int]:
    value = tx.get("blockTime")
    return int(value) if value is not None else None


def account_keys(tx: dict[str, Any]) -> list[str]:
    """Resolved account keys in index order.

    ``jsonParsed`` already inlines lookup-table addresses into ``accountKeys``;
    for plain ``json`` payloads the loaded addresses are appended the way the
    runtime orders them (writable first, then read-only).
    """
    message = (tx.get("transaction") or {}).get("message") or {}
    raw_keys = message.get("accountKeys") or []
    if any(isinstance(key_info, dict) for key_info in raw_keys):
        return [
            key_info if isinstance(key_info, str) else key_info.get("pubkey") or ""
            for key_info in raw_keys
        ]

    keys = [str(key) for key in raw_keys]
    loaded = _meta(tx).get("loadedAddresses") or {}
    keys.extend(loaded.get("writable") or [])
    keys.extend(loaded.get("readonly") or [])
    return keys


def primary_signer(tx: dict[str, Any]) -> Optional[str]:
    """The fee payer, which is always the first account key."""
    keys = account_keys(tx)
    return keys[0] if keys and keys[0] else None


def native_delta(tx: dict[str, Any], address: str) -> Optional[Decimal]:
    """Change of ``address``'s SOL balance, or None when it cannot be located."""
    keys = account_keys(tx)
    try:
        idx = keys.index(address)
    except ValueError:
        return None

    pre_balances = _meta(tx).get("preBalances") or []
    post_balances = _meta(tx).get("postBalances") or []
    if idx >= len(pre_balances) or idx >= len(post_balances):
        return None

    lamports = int(post_balances[idx]) - int(pre_balances[idx])
    return Decimal(lamports) / LAMPORTS_PER_SOL


def _token_amount(entry: dict[str, Any]) -> Decimal:
    ui = entry.get("uiTokenAmount") or {}
    raw = ui.get("amount")
    if raw is not None:
        return Decimal(int(raw)).scaleb(-int(ui.get("decimals") or 0))
    return Decimal(str(ui.get("uiAmountString") or ui.get("uiAmount") or 0))


def _token_balances_by_owner(
    entries: Iterable[dict[str, Any]], mint: str, keys: list[str]
) -> dict[str, Decimal]:
    balances: dict[str, Decimal] = {}
    for entry in entries:
        if entry.get("mint") != mint:
            continue
        owner = entry.get("owner")
        if not owner:
            # Old payloads omit the owner; fall back to the token account itself
            idx = entry.get("accountIndex")
            if idx is None or idx >= len(keys):
                continue
            owner = keys[idx]
        balances[owner] = balances.get(owner, Decimal(0)) + _token_amount(entry)
    return balances


def token_deltas(tx: dict[str, Any], mint: str) -> dict[str, Decimal]:
    """Per-owner change of ``mint`` balances across the transaction."""
    keys = account_keys(tx)
    pre = _token_balances_by_owner(_meta(tx).get("preTokenBalances") or [], mint, keys)
    post = _token_balances_by_owner(
        _meta(tx).get("postTokenBalances") or [], mint, keys
    )
    return {
        owner: post.get(owner, Decimal(0)) - pre.get(owner, Decimal(0))
        for owner in set(pre) | set(post)
    }


def token_delta(
    tx: dict[str, Any], mint: str, owner: str, token_account: Optional[str] = None
) -> Optional[Decimal]:
    """Change of ``owner``'s ``mint`` balance, or None when it is not in the payload."""
    deltas = token_deltas(tx, mint)
    if owner in deltas:
        return deltas[owner]
    if token_account and token_account in deltas:
        return deltas[token_account]
    return None


def token_sender(tx: dict[str, Any], mint: str, receiver: str) -> Optional[str]:
    """The owner whose ``mint`` balance dropped the most, excluding ``receiver``."""
    sender: Optional[str] = None
    largest = Decimal(0)
    for owner, delta in token_deltas(tx, mint).items():
        if owner == receiver:
            continue
        if -delta > largest:
            largest = -delta
            sender = owner
    return sender


def participants(tx: dict[str, Any]) -> set[str]:
    """Every address that appears in the transaction, token owners included."""
    found = {key for key in account_keys(tx) if key}
    meta = _meta(tx)
    for entry in (meta.get("preTokenBalances") or []) + (
        meta.get("postTokenBalances") or []
    ):
        if entry.get("owner"):
            found.add(entry["owner"])
    return found
