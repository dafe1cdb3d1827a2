"""Stable external identifiers for generated mock transactions.

IDs look like ``txn-v1-<seed tag>-<digest>``:

- ``v1`` is the format version. Persisted IDs are idempotency keys, so any
  change to the derivation must ship under a new version tag.
- ``<seed tag>`` (8 hex chars) depends on the seed only, so every ID generated
  from one seed shares a recognizable prefix.
- ``<digest>`` (16 hex chars, 64 bits) is SHA-256 over the canonical JSON of
  ``(version, seed, index)``.
"""

from __future__ import annotations

import hashlib
import json

ID_VERSION = 1
_PREFIX = f"txn-v{ID_VERSION}"

type Seed = int | str


def _canonical(payload: dict[str, object]) -> bytes:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode(
        "utf-8"
    )


def _seed_text(seed: Seed) -> str:
    if isinstance(seed, bool) or not isinstance(seed, (int, str)):
        raise TypeError(f"seed must be an int or str, got {type(seed).__name__}")
    return str(seed)


def seed_tag(seed: Seed) -> str:
    """Return the 8-hex-character tag shared by all IDs derived from ``seed``."""

    data = _canonical({"v": ID_VERSION, "seed": _seed_text(seed)})
    return hashlib.sha256(data).hexdigest()[:8]


def external_id_prefix(seed: Seed) -> str:
    return f"{_PREFIX}-{seed_tag(seed)}-"


def derive_external_id(seed: Seed, index: int) -> str:
    """Derive the external ID for slot ``index`` of ``seed``.

    Pure and stable across processes and platforms. ``int`` seeds and their
    decimal string form (``42`` and ``"42"``) derive the same IDs.
    """

    if isinstance(index, bool) or not isinstance(index, int) or index < 0:
        raise ValueError("index must be a non-negative integer")
    data = _canonical({"v": ID_VERSION, "seed": _seed_text(seed), "index": index})
    digest = hashlib.sha256(data).hexdigest()[:16]
    return f"{external_id_prefix(seed)}{digest}"


__all__ = ["ID_VERSION", "Seed", "derive_external_id", "external_id_prefix", "seed_tag"]
