from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_COMPLEMENT = bytes.maketrans(
    b"ACGTUNRYSWKMBDHVacgtunryswkmbdhv",
    b"TGCAANYRSWMKVHDBtgcaanyrswmkvhdb",
)


def clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def reverse_complement(seq: bytes) -> bytes:
    # IUPAC-aware; unknown symbols are kept as-is.
    return seq.translate(_COMPLEMENT)[::-1]


def first_token(name: str) -> str:
    """Return the first whitespace-delimited token of a FASTA header."""
    parts = name.split()
    return parts[0] if parts else name


def ensure_outdir(path: str | Path) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def write_json(path: str | Path, obj: Any) -> None:
    with open(path, "wt", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, sort_keys=True)
