"""Discrete probability distributions over non-negative integers.

A distribution is a 1-D tensor ``p`` with ``p[n]`` the probability of the
value ``n``.
"""
from __future__ import annotations

import enum
import math

import torch
import torch.distributions
import torch.fft
from torch import Tensor

from ..typing import ListTensor

TRIM_TOLERANCE = 1e-10
POISSON_TOLERANCE = 1e-10
DIRECT_CONVOLVE_SIZE = 32


class Tail(enum.Enum):
    LOWER = 'lower'
    UPPER = 'upper'


def normalize(p: Tensor) -> Tensor:
    total = p.sum()
    if total <= 0.0:
        return p
    return p / total


def trim(p: Tensor, tolerance: float = TRIM_TOLERANCE) -> Tensor:
    """Drop the trailing elements smaller than ``tolerance``.

    At least one element is kept.
    """
    kept = torch.nonzero(p >= tolerance)
    if kept.shape[0] == 0:
        return p[:1]
    return p[: int(kept[-1]) + 1]


def stats(p: Tensor) -> tuple[float, float]:
    """Return the mean and variance of a distribution."""
    n = torch.arange(p.shape[-1], dtype=p.dtype)
    mean = torch.sum(n * p)
    var = torch.sum((n - mean) ** 2 * p)
    return float(mean), float(var)


def confidence_interval(p: Tensor, size: float = 0.95) -> tuple[int, int]:
    """Return the smallest values whose cumulative probabilities reach the
    lower and upper quantiles of a central interval of mass ``size``."""
    tail = (1.0 - size) / 2.0
    cdf = torch.cumsum(p, 0)
    quantiles = torch.tensor([tail, 1.0 - tail], dtype=cdf.dtype)
    bounds = torch.searchsorted(cdf, quantiles).clamp(max=p.shape[0] - 1)
    return int(bounds[0]), int(bounds[1])


def p_value(p: Tensor, x: float, tail: Tail) -> float:
    r"""Tail probability of a distribution.

    :math:`P(N \le x)` for the lower tail and :math:`P(N \ge x)` for the
    upper tail.
    """
    x = int(x)
    size = p.shape[0]
    if tail == Tail.LOWER:
        if x < 0:
            return 0.0
        return float(p[: min(x, size - 1) + 1].sum())
    if x >= size:
        return 0.0
    return float(p[max(x, 0) :].sum())


def norm_confidence_interval(
    mean: float, sd: float, size: float = 0.95
) -> tuple[float, float]:
    """Central interval of a normal distribution."""
    if sd <= 0.0:
        return mean, mean
    tail = (1.0 - size) / 2.0
    normal = torch.distributions.Normal(
        torch.tensor(mean, dtype=torch.float64), torch.tensor(sd, dtype=torch.float64)
    )
    bounds = normal.icdf(torch.tensor([tail, 1.0 - tail], dtype=torch.float64))
    return float(bounds[0]), float(bounds[1])


def convolve(p: Tensor, q: Tensor) -> Tensor:
    """Distribution of the sum of two independent variables.

    When one of the distributions has at most :data:`DIRECT_CONVOLVE_SIZE`
    elements, the shifted copies of the other are accumulated. Otherwise
    the product of the Fourier transforms is used and the rounding noise
    below zero is clamped.
    """
    q = q.to(p.dtype)
    if q.shape[-1] > p.shape[-1]:
        p, q = q, p
    size = p.shape[-1] + q.shape[-1] - 1
    if q.shape[-1] <= DIRECT_CONVOLVE_SIZE:
        result = p.new_zeros(size)
        for k in range(q.shape[-1]):
            result[k : k + p.shape[-1]] += q[k] * p
        return result
    result = torch.fft.irfft(
        torch.fft.rfft(p, n=size) * torch.fft.rfft(q, n=size), n=size
    )
    return result.clamp(min=0.0)


def convolve_power(p: Tensor, k: int) -> Tensor:
    """Distribution of the sum of ``k`` independent copies of a variable."""
    result = torch.ones(1, dtype=p.dtype)
    power = p
    while k > 0:
        if k & 1:
            result = convolve(result, power)
        k >>= 1
        if k > 0:
            power = convolve(power, power)
    return result


def convolve_many(ps: ListTensor, counts: list[int] = None) -> Tensor:
    """Convolve distributions, each taken ``counts[i]`` times."""
    if counts is None:
        counts = [1] * len(ps)
    result = torch.ones(1, dtype=ps[0].dtype if len(ps) > 0 else torch.float64)
    for p, count in zip(ps, counts):
        if count > 0:
            result = convolve(result, convolve_power(p, count))
    return result


def poisson(rate: float, tolerance: float = POISSON_TOLERANCE) -> Tensor:
    """Probability mass function of a Poisson distribution truncated where
    the remaining upper tail is smaller than ``tolerance``."""
    if rate <= 0.0:
        return torch.ones(1, dtype=torch.float64)
    distribution = torch.distributions.Poisson(torch.tensor(rate, dtype=torch.float64))
    upper = int(math.ceil(rate + 10.0 * math.sqrt(rate))) + 10
    while True:
        support = torch.arange(upper + 1, dtype=torch.float64)
        pmf = distribution.log_prob(support).exp()
        remaining = 1.0 - torch.cumsum(pmf, 0)
        below = torch.nonzero(remaining < tolerance)
        if below.shape[0] > 0:
            return pmf[: int(below[0]) + 1]
        upper *= 2
