import numpy as np
import pytest
import torch

from torchsubst.ops import prob_vector
from torchsubst.ops.prob_vector import Tail


def test_normalize():
    p = prob_vector.normalize(torch.tensor([1.0, 3.0], dtype=torch.float64))
    np.testing.assert_allclose(p, [0.25, 0.75])


def test_normalize_zero_mass():
    p = torch.zeros(3, dtype=torch.float64)
    assert torch.equal(prob_vector.normalize(p), p)


def test_trim():
    p = torch.tensor([0.5, 0.5 - 1e-11, 1e-11, 1e-12], dtype=torch.float64)
    assert prob_vector.trim(p).shape[0] == 2
    assert prob_vector.trim(torch.zeros(4, dtype=torch.float64)).shape[0] == 1


def test_stats():
    p = torch.tensor([0.25, 0.5, 0.25], dtype=torch.float64)
    mean, var = prob_vector.stats(p)
    assert mean == pytest.approx(1.0)
    assert var == pytest.approx(0.5)


def test_confidence_interval():
    p = torch.full((4,), 0.25, dtype=torch.float64)
    assert prob_vector.confidence_interval(p, 0.5) == (0, 2)
    assert prob_vector.confidence_interval(p, 0.95) == (0, 3)


@pytest.mark.parametrize(
    "x,tail,expected",
    [
        (1, Tail.LOWER, 0.5),
        (-1, Tail.LOWER, 0.0),
        (10, Tail.LOWER, 1.0),
        (2, Tail.UPPER, 0.5),
        (0, Tail.UPPER, 1.0),
        (4, Tail.UPPER, 0.0),
    ],
)
def test_p_value(x, tail, expected):
    p = torch.tensor([0.25, 0.25, 0.25, 0.25], dtype=torch.float64)
    assert prob_vector.p_value(p, x, tail) == pytest.approx(expected)


def test_norm_confidence_interval():
    low, high = prob_vector.norm_confidence_interval(10.0, 2.0, 0.95)
    assert low == pytest.approx(10.0 - 1.959964 * 2.0, rel=1e-6)
    assert high == pytest.approx(10.0 + 1.959964 * 2.0, rel=1e-6)
    assert prob_vector.norm_confidence_interval(3.0, 0.0, 0.95) == (3.0, 3.0)


def test_convolve():
    p = np.array([0.2, 0.5, 0.3])
    q = np.array([0.6, 0.4])
    result = prob_vector.convolve(torch.tensor(p), torch.tensor(q))
    np.testing.assert_allclose(result, np.convolve(p, q), atol=1e-15)


@pytest.mark.parametrize("k", [1, 2, 5, 13])
def test_convolve_power(k):
    p = np.array([0.2, 0.5, 0.3])
    expected = np.array([1.0])
    for _ in range(k):
        expected = np.convolve(expected, p)
    result = prob_vector.convolve_power(torch.tensor(p), k)
    np.testing.assert_allclose(result, expected, atol=1e-14)


def test_convolve_many():
    p = torch.tensor([0.2, 0.8], dtype=torch.float64)
    q = torch.tensor([0.5, 0.25, 0.25], dtype=torch.float64)
    result = prob_vector.convolve_many([p, q], [3, 2])
    expected = prob_vector.convolve(
        prob_vector.convolve_power(p, 3), prob_vector.convolve_power(q, 2)
    )
    assert torch.allclose(result, expected)
    assert torch.equal(
        prob_vector.convolve_many([p], [0]), torch.ones(1, dtype=torch.float64)
    )


def test_poisson():
    pmf = prob_vector.poisson(4.5)
    assert pmf.sum().item() == pytest.approx(1.0, abs=1e-10)
    assert pmf[3].item() == pytest.approx(np.exp(-4.5) * 4.5**3 / 6.0)
    mean, var = prob_vector.stats(pmf)
    assert mean == pytest.approx(4.5, rel=1e-8)
    assert var == pytest.approx(4.5, rel=1e-7)


def test_poisson_zero_rate():
    assert torch.equal(prob_vector.poisson(0.0), torch.ones(1, dtype=torch.float64))


def binomial(n, p):
    distribution = torch.distributions.Binomial(
        n, probs=torch.tensor(p, dtype=torch.float64)
    )
    return distribution.log_prob(torch.arange(n + 1, dtype=torch.float64)).exp()


def test_convolve_long():
    result = prob_vector.convolve(binomial(30000, 0.5), binomial(20000, 0.5))
    assert result.shape == (50001,)
    assert torch.all(result >= 0.0)
    assert torch.allclose(result, binomial(50000, 0.5), rtol=0.0, atol=1e-10)
    assert result.sum().item() == pytest.approx(1.0)


def test_convolve_fourier_matches_direct():
    rng = np.random.default_rng(7)
    p = rng.random(40)
    q = rng.random(50)
    p, q = p / p.sum(), q / q.sum()
    result = prob_vector.convolve(torch.tensor(p), torch.tensor(q))
    np.testing.assert_allclose(result, np.convolve(p, q), atol=1e-14)
