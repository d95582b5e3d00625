"""Joint distributions of two non-negative integer variables.

A distribution is a 2-D tensor ``p`` with ``p[x, y]`` the probability of
the pair ``(x, y)``.
"""
from __future__ import annotations

import torch
import torch.fft
from torch import Tensor

from ..typing import ListTensor
from .prob_vector import DIRECT_CONVOLVE_SIZE, TRIM_TOLERANCE


def normalize(p: Tensor) -> Tensor:
    total = p.sum()
    if total <= 0.0:
        return p
    return p / total


def trim(p: Tensor, tolerance: float = TRIM_TOLERANCE) -> Tensor:
    """Drop trailing rows and columns with no element above ``tolerance``."""
    above = p >= tolerance
    rows = torch.nonzero(above.any(1))
    cols = torch.nonzero(above.any(0))
    nrows = int(rows[-1]) + 1 if rows.shape[0] > 0 else 1
    ncols = int(cols[-1]) + 1 if cols.shape[0] > 0 else 1
    return p[:nrows, :ncols]


def marginal_x(p: Tensor) -> Tensor:
    return p.sum(1)


def marginal_y(p: Tensor) -> Tensor:
    return p.sum(0)


def marginal_total(p: Tensor) -> Tensor:
    """Distribution of ``x + y``."""
    nrows, ncols = p.shape
    total = torch.arange(nrows).unsqueeze(1) + torch.arange(ncols).unsqueeze(0)
    return torch.zeros(nrows + ncols - 1, dtype=p.dtype).index_add_(
        0, total.reshape(-1), p.reshape(-1)
    )


def stats(p: Tensor) -> tuple[float, float, float, float, float]:
    """Return the means and variances of both variables and their
    covariance as ``(mean_x, mean_y, var_x, var_y, cov)``."""
    x = torch.arange(p.shape[0], dtype=p.dtype).unsqueeze(1)
    y = torch.arange(p.shape[1], dtype=p.dtype).unsqueeze(0)
    mean_x = torch.sum(x * p)
    mean_y = torch.sum(y * p)
    var_x = torch.sum((x - mean_x) ** 2 * p)
    var_y = torch.sum((y - mean_y) ** 2 * p)
    cov = torch.sum((x - mean_x) * (y - mean_y) * p)
    return float(mean_x), float(mean_y), float(var_x), float(var_y), float(cov)


def convolve(p: Tensor, q: Tensor) -> Tensor:
    """Joint distribution of the sum of two independent pairs, computed in
    the same way as :func:`~torchsubst.ops.prob_vector.convolve`."""
    q = q.to(p.dtype)
    if q.numel() > p.numel():
        p, q = q, p
    shape = (p.shape[0] + q.shape[0] - 1, p.shape[1] + q.shape[1] - 1)
    if q.numel() <= DIRECT_CONVOLVE_SIZE:
        result = p.new_zeros(shape)
        for i in range(q.shape[0]):
            for j in range(q.shape[1]):
                result[i : i + p.shape[0], j : j + p.shape[1]] += q[i, j] * p
        return result
    result = torch.fft.irfftn(
        torch.fft.rfftn(p, s=shape) * torch.fft.rfftn(q, s=shape), s=shape
    )
    return result.clamp(min=0.0)


def convolve_power(p: Tensor, k: int) -> Tensor:
    result = torch.ones((1, 1), dtype=p.dtype)
    power = p
    while k > 0:
        if k & 1:
            result = convolve(result, power)
        k >>= 1
        if k > 0:
            power = convolve(power, power)
    return result


def convolve_many(ps: ListTensor, counts: list[int] = None) -> Tensor:
    if counts is None:
        counts = [1] * len(ps)
    result = torch.ones((1, 1), dtype=ps[0].dtype if len(ps) > 0 else torch.float64)
    for p, count in zip(ps, counts):
        if count > 0:
            result = convolve(result, convolve_power(p, count))
    return result


def convolve_many_fast(ps: ListTensor, max_rows: int, max_cols: int) -> Tensor:
    """Convolve distributions keeping at most ``max_rows`` x ``max_cols``
    elements of every intermediate result.

    The mass falling outside of the bounds is discarded and the result is
    renormalized.
    """
    result = torch.ones((1, 1), dtype=ps[0].dtype)
    for p in ps:
        result = convolve(result, p)[:max_rows, :max_cols]
    return normalize(result)


def _given_total(p: Tensor, total: int) -> Tensor:
    total = int(total)
    if total < 0:
        return torch.zeros(1, dtype=p.dtype)
    x = torch.arange(total + 1)
    y = total - x
    valid = (x < p.shape[0]) & (y < p.shape[1])
    conditional = torch.zeros(total + 1, dtype=p.dtype)
    conditional[valid] = p[x[valid], y[valid]]
    return normalize(conditional)


def x_given_total(p: Tensor, total: int) -> Tensor:
    """Distribution of ``x`` given ``x + y = total``.

    All elements are zero if the total has probability zero.
    """
    return _given_total(p, total)


def y_given_total(p: Tensor, total: int) -> Tensor:
    """Distribution of ``y`` given ``x + y = total``."""
    return _given_total(p.t(), total)


def _given_total_independent(total: int, p_x: Tensor, p_y: Tensor) -> Tensor:
    total = int(total)
    if total < 0:
        return torch.zeros(1, dtype=p_x.dtype)
    x = torch.arange(total + 1)
    y = total - x
    valid = (x < p_x.shape[0]) & (y < p_y.shape[0])
    conditional = torch.zeros(total + 1, dtype=p_x.dtype)
    conditional[valid] = p_x[x[valid]] * p_y[y[valid]]
    return normalize(conditional)


def x_given_total_independent(total: int, p_x: Tensor, p_y: Tensor) -> Tensor:
    """Distribution of ``x`` given ``x + y = total`` assuming ``x`` and ``y``
    are independent with marginals ``p_x`` and ``p_y``."""
    return _given_total_independent(total, p_x, p_y)


def y_given_total_independent(total: int, p_x: Tensor, p_y: Tensor) -> Tensor:
    return _given_total_independent(total, p_y, p_x)
