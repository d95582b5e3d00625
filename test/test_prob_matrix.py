import numpy as np
import pytest
import torch

from torchsubst.ops import prob_matrix, prob_vector


@pytest.fixture
def joint():
    return torch.tensor(
        [[0.1, 0.2, 0.05], [0.15, 0.1, 0.0], [0.2, 0.1, 0.1]], dtype=torch.float64
    )


def test_marginals(joint):
    np.testing.assert_allclose(prob_matrix.marginal_x(joint), [0.35, 0.25, 0.4])
    np.testing.assert_allclose(prob_matrix.marginal_y(joint), [0.45, 0.4, 0.15])
    np.testing.assert_allclose(
        prob_matrix.marginal_total(joint), [0.1, 0.35, 0.35, 0.1, 0.1]
    )


def test_stats(joint):
    mean_x, mean_y, var_x, var_y, cov = prob_matrix.stats(joint)
    x = np.arange(3)
    p = joint.numpy()
    assert mean_x == pytest.approx(np.sum(x[:, None] * p))
    assert mean_y == pytest.approx(np.sum(x[None, :] * p))
    assert var_x == pytest.approx(np.sum((x[:, None] - mean_x) ** 2 * p))
    assert var_y == pytest.approx(np.sum((x[None, :] - mean_y) ** 2 * p))
    assert cov == pytest.approx(
        np.sum((x[:, None] - mean_x) * (x[None, :] - mean_y) * p)
    )


def test_trim():
    p = torch.zeros((4, 5), dtype=torch.float64)
    p[0, 0] = 0.5
    p[1, 2] = 0.5
    p[3, 4] = 1e-12
    assert prob_matrix.trim(p).shape == (2, 3)


def test_convolve(joint):
    q = torch.tensor([[0.3, 0.2], [0.4, 0.1]], dtype=torch.float64)
    result = prob_matrix.convolve(joint, q)
    assert result.shape == (4, 4)
    expected = np.zeros((4, 4))
    for i in range(3):
        for j in range(3):
            for k in range(2):
                for m in range(2):
                    expected[i + k, j + m] += joint[i, j].item() * q[k, m].item()
    np.testing.assert_allclose(result, expected, atol=1e-15)


def test_convolve_power(joint):
    result = prob_matrix.convolve_power(joint, 3)
    expected = prob_matrix.convolve(prob_matrix.convolve(joint, joint), joint)
    assert torch.allclose(result, expected)
    np.testing.assert_allclose(
        prob_matrix.marginal_x(result),
        prob_vector.convolve_power(prob_matrix.marginal_x(joint), 3),
        atol=1e-14,
    )


def test_convolve_many_fast(joint):
    exact = prob_matrix.convolve_many([joint, joint])
    bounded = prob_matrix.convolve_many_fast([joint, joint], 3, 4)
    assert bounded.shape == (3, 4)
    assert torch.allclose(bounded, prob_matrix.normalize(exact[:3, :4]))
    unbounded = prob_matrix.convolve_many_fast([joint, joint], 10, 10)
    assert torch.allclose(unbounded, exact)


def test_x_given_total(joint):
    conditional = prob_matrix.x_given_total(joint, 2)
    np.testing.assert_allclose(conditional, np.array([0.05, 0.1, 0.2]) / 0.35)
    conditional = prob_matrix.y_given_total(joint, 2)
    np.testing.assert_allclose(conditional, np.array([0.2, 0.1, 0.05]) / 0.35)


def test_given_total_zero_mass(joint):
    p = joint.clone()
    p[0, 1] = p[1, 0] = 0.0
    conditional = prob_matrix.x_given_total(p, 1)
    assert torch.all(conditional == 0.0)
    assert torch.all(prob_matrix.x_given_total(joint, 10) == 0.0)


def test_given_total_independent():
    p_x = torch.tensor([0.5, 0.5], dtype=torch.float64)
    p_y = torch.tensor([0.2, 0.3, 0.5], dtype=torch.float64)
    expected = prob_matrix.x_given_total(torch.outer(p_x, p_y), 2)
    assert torch.allclose(prob_matrix.x_given_total_independent(2, p_x, p_y), expected)
    expected = prob_matrix.y_given_total(torch.outer(p_x, p_y), 2)
    assert torch.allclose(prob_matrix.y_given_total_independent(2, p_x, p_y), expected)


def binomial(n, p):
    distribution = torch.distributions.Binomial(
        n, probs=torch.tensor(p, dtype=torch.float64)
    )
    return distribution.log_prob(torch.arange(n + 1, dtype=torch.float64)).exp()


def test_convolve_large():
    p = torch.outer(binomial(199, 0.3), binomial(199, 0.6))
    result = prob_matrix.convolve(p, p)
    assert result.shape == (399, 399)
    assert torch.all(result >= 0.0)
    expected = torch.outer(binomial(398, 0.3), binomial(398, 0.6))
    assert torch.allclose(result, expected, rtol=0.0, atol=1e-12)


def test_convolve_fourier_matches_direct():
    q = torch.rand((6, 7), dtype=torch.float64)
    q /= q.sum()
    result = prob_matrix.convolve(q, q)
    expected = torch.zeros((11, 13), dtype=torch.float64)
    for i in range(6):
        for j in range(7):
            expected[i : i + 6, j : j + 7] += q[i, j] * q
    assert torch.allclose(result, expected, rtol=0.0, atol=1e-14)
