"""Embedding reshaping — brings vectors of any native width to one canonical width.

Different embedding models emit different widths (768, 1536, 3072, ...) while
the vector index compares fixed-width vectors. Short vectors are zero-padded,
long ones downsampled by proportional overlap, and the result is scaled to
unit length so cosine similarity reduces to a dot product.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import sqlite_vec

if TYPE_CHECKING:
    from collections.abc import Sequence


def _as_array(vector: Sequence[float]) -> np.ndarray:
    return np.asarray(vector, dtype=np.float64)


def unit_normalize(vector: Sequence[float]) -> list[float]:
    """Scale to L2 norm 1. A zero (or empty) vector is returned unchanged."""
    arr = _as_array(vector)
    norm = np.linalg.norm(arr)
    if norm == 0 or np.isnan(norm):
        return arr.tolist()
    return (arr / norm).tolist()


def pad_to_width(vector: Sequence[float], width: int) -> list[float]:
    """Append zeros up to ``width``. Vectors already that wide are returned as-is."""
    if len(vector) >= width:
        return list(vector)
    return np.pad(_as_array(vector), (0, width - len(vector))).tolist()


def downsample_to_width(vector: Sequence[float], width: int) -> list[float]:
    """Area-preserving downsampling to ``width`` bins.

    Each output bin covers ``len(vector) / width`` source samples; partially
    covered samples contribute in proportion to their overlap. Positions are
    tracked in integer units (one sample = ``width`` units, one bin =
    ``len(vector)`` units), so bin edges are exact and no bin is ever empty.
    Vectors not wider than ``width`` are padded instead.
    """
    if width <= 0:
        raise ValueError(f"width must be positive, got {width}")
    n = len(vector)
    if n <= width:
        return pad_to_width(vector, width)

    arr = _as_array(vector)
    # Running area under the step function at every whole sample boundary
    area = np.concatenate(([0.0], np.cumsum(arr))) * width
    edges = np.arange(width + 1, dtype=np.int64) * n
    sample, offset = np.divmod(edges, width)
    # The last edge lands exactly on the end, where the partial term is zero
    partial = np.append(arr, 0.0)[sample] * offset
    return (np.diff(area[sample] + partial) / n).tolist()


def to_canonical_width(vector: Sequence[float], width: int) -> list[float]:
    """Pad or downsample to ``width``, then normalize to unit length."""
    if len(vector) > width:
        reshaped = downsample_to_width(vector, width)
    else:
        reshaped = pad_to_width(vector, width)
    return unit_normalize(reshaped)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity in [-1, 1]; 0.0 when either vector has zero norm."""
    if len(a) != len(b):
        raise ValueError(f"Embeddings must have the same dimensions ({len(a)} != {len(b)})")
    va, vb = _as_array(a), _as_array(b)
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0:
        return 0.0
    # Rounding can push |sim| a hair past 1
    return float(np.clip(np.dot(va, vb) / norm, -1.0, 1.0))


def cosine_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine distance ``1 - similarity`` in [0, 2]."""
    return 1.0 - cosine_similarity(a, b)


def pack_vector(vector: Sequence[float]) -> bytes:
    """Pack a float list into the float32 blob format sqlite-vec reads."""
    return sqlite_vec.serialize_float32(list(vector))


def unpack_vector(blob: bytes) -> list[float]:
    """Unpack a float32 blob back into a float list."""
    return np.frombuffer(blob, dtype=np.float32).tolist()
