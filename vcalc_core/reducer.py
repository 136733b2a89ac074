# MIT License © 2025 Motohiro Suzuki
"""
vcalc_core/reducer.py

Overflow-aware product of a float32 vector.

- running product left to right, all arithmetic in float32
- before each multiply: sign-case bound check against max/b or lowest/b
- after each multiply: non-finite product
Either check returns OVERFLOW_SENTINEL (-inf), whatever the true sign.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Sequence

import numpy as np


log = logging.getLogger(__name__)

OVERFLOW_SENTINEL = np.float32(-np.inf)

_F32_MAX = np.finfo(np.float32).max
_F32_LOWEST = np.finfo(np.float32).min


def would_overflow(a: np.float32, b: np.float32) -> bool:
    a = np.float32(a)
    b = np.float32(b)
    if a == 0 or b == 0:
        return False

    with np.errstate(over="ignore", divide="ignore", invalid="ignore"):
        if a > 0 and b > 0:
            return bool(a > _F32_MAX / b)
        # negative * negative: compared against max/b (negative), not a symmetric bound
        if a < 0 and b < 0:
            return bool(a < _F32_MAX / b)
        if a > 0 and b < 0:
            return bool(b < _F32_LOWEST / a)
        if a < 0 and b > 0:
            return bool(a < _F32_LOWEST / b)
    return False


def reduce_product(values: Sequence[float] | np.ndarray) -> np.float32:
    vec = np.asarray(values, dtype=np.float32)
    if vec.size == 0:
        log.warning("product requested for an empty vector")
        return np.float32(0.0)

    if log.isEnabledFor(logging.DEBUG):
        log.debug("calculating product of %d values: %s", vec.size, vec.tolist())

    product = np.float32(1.0)
    with np.errstate(over="ignore", invalid="ignore"):
        for value in vec:
            if would_overflow(product, value):
                log.warning("overflow predicted at operand %r", float(value))
                return OVERFLOW_SENTINEL
            product = np.float32(product * value)
            if not np.isfinite(product):
                log.warning("product became non-finite (%r)", float(product))
                return OVERFLOW_SENTINEL

    log.debug("calculated product: %r", float(product))
    return product


def reduce_batch(vectors: Iterable[Sequence[float] | np.ndarray]) -> List[np.float32]:
    results = [reduce_product(v) for v in vectors]
    log.info("reduced %d vectors", len(results))
    return results
