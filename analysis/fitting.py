"""Quadratic fits over short, regularly spaced sample windows.

Both fits work in the window's own coordinates, x = 0 .. len(window) - 1,
and return `ParabolaCoefficients` for ``a + b*x + c*x**2``. Windows of 0, 1
and 2 samples are handled as closed-form special cases:

- 0 samples: ``(0, 0, 0)``, a flat line that never counts as a peak.
- 1 sample: ``(v, 0, -1)``, a unit downward parabola with its apex on the sample.
- 2 samples: a parabola through both points with its apex on one of them.
"""
from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from shared.models import ParabolaCoefficients

from .metrics import elementwise_product, mean, scalar_product, vector_norm, vector_sum

logger = logging.getLogger(__name__)

# Relative size below which the fixed-apex normal equations are treated as singular.
SINGULAR_RTOL = 1e-12


def _small_window(vals: np.ndarray) -> ParabolaCoefficients | None:
    if vals.size == 0:
        return ParabolaCoefficients(0.0, 0.0, 0.0)
    if vals.size == 1:
        return ParabolaCoefficients(float(vals[0]), 0.0, -1.0)
    return None


def fit_parabola(window: Sequence[float]) -> ParabolaCoefficients:
    """Least-squares parabola through `window`.

    For three or more samples the linear and quadratic regressors are centred
    on the window mean and scaled to unit length. This keeps the two terms
    decoupled. The result is converted back to the uncentred basis. Two
    samples give the parabola through both points with its apex at x = 1.
    """
    vals = np.asarray(window, dtype=np.float64).ravel()
    small = _small_window(vals)
    if small is not None:
        return small

    if vals.size == 2:
        v0, v1 = float(vals[0]), float(vals[1])
        # v(0) = v0, v(1) = v1, v'(1) = 0
        return ParabolaCoefficients(v0, 2.0 * v1 - 2.0 * v0, v0 - v1)

    x = np.arange(vals.size, dtype=np.float64)
    xbar = (vals.size - 1) / 2.0

    lin = x - xbar
    lin_norm = vector_norm(lin)
    lin = lin / lin_norm
    b = scalar_product(vals, lin) / lin_norm

    quad = (x - xbar) ** 2
    quad = quad - mean(quad)
    quad_norm = vector_norm(quad)
    quad = quad / quad_norm
    c = scalar_product(vals, quad) / quad_norm

    a = mean(vals - b * (x - xbar) - c * (x - xbar) ** 2)

    # y = a + b (x - xbar) + c (x - xbar)^2, expanded in powers of x
    return ParabolaCoefficients(
        a - b * xbar + c * xbar * xbar,
        b - 2.0 * c * xbar,
        c,
    )


def fit_parabola_fixed_apex(window: Sequence[float], apex_index: int) -> ParabolaCoefficients:
    """Least-squares parabola anchored on the sample at `apex_index`.

    `apex_index` is clamped into the window and is taken as the peak position
    by the caller. With three or more samples the fitted curve passes exactly
    through ``window[apex]`` and minimises ``sum((v - H) - b*dx - c*dx**2)**2`` where ``dx = x - apex``
    and ``H = window[apex]``. This leads to a 2x2 system in the power sums
    ``B = sum dx**2``, ``C = sum dx**3``, ``E = sum dx**4``. If that system is
    numerically singular, the fit degrades to the flat line ``v = H``.
    """
    vals = np.asarray(window, dtype=np.float64).ravel()
    small = _small_window(vals)
    if small is not None:
        return small

    xm = int(min(max(int(apex_index), 0), vals.size - 1))

    if vals.size == 2:
        v0, v1 = float(vals[0]), float(vals[1])
        if xm == 0:
            return ParabolaCoefficients(v0, 0.0, v1 - v0)
        # v1 + (v0 - v1) (x - 1)^2
        return ParabolaCoefficients(v0, 2.0 * (v1 - v0), v0 - v1)

    height = float(vals[xm])
    dx = np.arange(vals.size, dtype=np.float64) - xm
    rel = vals - height

    dx2 = elementwise_product(dx, dx)
    dx3 = elementwise_product(dx2, dx)
    dx4 = elementwise_product(dx3, dx)

    A = scalar_product(rel, dx)
    B = vector_sum(dx2)
    C = vector_sum(dx3)
    D = scalar_product(rel, dx2)
    E = vector_sum(dx4)

    denom = E * B - C * C
    if abs(denom) <= SINGULAR_RTOL * abs(E * B) or B == 0:
        logger.debug("Singular fixed-apex fit (n=%d, apex=%d); using flat fallback", vals.size, xm)
        return ParabolaCoefficients(height, 0.0, 0.0)

    c = (D * B - A * C) / denom
    b = (A - c * C) / B

    # y = H + b (x - xm) + c (x - xm)^2, expanded in powers of x
    return ParabolaCoefficients(
        height - b * xm + c * xm * xm,
        b - 2.0 * c * xm,
        c,
    )


__all__ = ["fit_parabola", "fit_parabola_fixed_apex"]
