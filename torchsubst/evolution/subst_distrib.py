r"""Distributions of the number of substitutions on a tree.

The likelihoods are computed by a postorder traversal where ``L[node]`` is a
[S,N] tensor with ``L[node][a, n]`` the probability of the data below
``node`` and of :math:`n` substitutions in the subtree given state :math:`a`
at ``node``. Without data every leaf is missing and the distributions are
prior distributions.
"""
from __future__ import annotations

import logging
from typing import Optional

import torch
from torch import Tensor
from torch.nn import functional as F

from ..core.utils import UnsupportedModelOrderError
from ..ops import prob_matrix, prob_vector
from .jump_process import JumpProcess
from .site_pattern import SitePattern

logger = logging.getLogger(__name__)


def check_order(jump_process: JumpProcess) -> None:
    order = jump_process.substitution_model.order
    if order != 0:
        raise UnsupportedModelOrderError(order)


def leaf_likelihood(
    jump_process: JumpProcess, character: Optional[str], data_type=None
) -> Tensor:
    """Likelihood of a leaf, flat for missing data."""
    state_count = jump_process.state_count
    dtype = jump_process.R.dtype
    if character is None or data_type.is_missing(character):
        return torch.ones((state_count, 1), dtype=dtype)
    likelihood = torch.zeros((state_count, 1), dtype=dtype)
    likelihood[data_type.state_index(character), 0] = 1.0
    return likelihood


def branch_contribution(likelihood: Tensor, D: Tensor) -> Tensor:
    r"""Add the branch above a node to its likelihood.

    .. math::

        C[a, m] = \sum_b \sum_k L[b, m - k] D[a, b, k]
    """
    return F.conv1d(
        likelihood.unsqueeze(0), D.flip(-1), padding=D.shape[-1] - 1
    ).squeeze(0)


def combine(left: Tensor, right: Tensor) -> Tensor:
    """Convolve two [S,N] tensors state by state."""
    state_count = left.shape[0]
    return F.conv1d(
        left.unsqueeze(0),
        right.flip(-1).unsqueeze(1),
        padding=right.shape[-1] - 1,
        groups=state_count,
    ).squeeze(0)


def _leaf_characters(
    jump_process: JumpProcess, patterns: Optional[SitePattern], tuple_idx: int
) -> dict:
    tree_model = jump_process.tree_model
    characters = {}
    for node in tree_model.postorder:
        if tree_model.is_leaf(node):
            if patterns is None:
                characters[node] = None
            else:
                row = patterns.sequence_index(tree_model.leaf_taxon(node))
                characters[node] = patterns.character(row, tuple_idx)
    return characters


def subtree_likelihoods(
    jump_process: JumpProcess,
    patterns: Optional[SitePattern] = None,
    tuple_idx: int = None,
) -> list[Tensor]:
    """Postorder likelihoods of every node for a column tuple.

    :param JumpProcess jump_process: jump process
    :param SitePattern patterns: column tuples or None for the prior
    :param int tuple_idx: index of the column tuple
    """
    check_order(jump_process)
    tree_model = jump_process.tree_model
    branch_distrib = jump_process.branch_distrib
    data_type = patterns.data_type if patterns is not None else None
    characters = _leaf_characters(jump_process, patterns, tuple_idx)

    likelihoods = [None] * tree_model.node_count
    for node in tree_model.postorder:
        children = tree_model.children(node)
        if len(children) == 0:
            likelihoods[node] = leaf_likelihood(
                jump_process, characters[node], data_type
            )
            continue
        partial = None
        for child in children:
            contribution = branch_contribution(
                likelihoods[child], branch_distrib[child]
            )
            partial = contribution if partial is None else combine(partial, contribution)
        likelihoods[node] = partial
    return likelihoods


def _finalize(p: Tensor, tolerance: float) -> Tensor:
    return prob_vector.normalize(prob_vector.trim(prob_vector.normalize(p), tolerance))


def _site_distrib(
    jump_process: JumpProcess, patterns: Optional[SitePattern], tuple_idx: int
) -> Tensor:
    likelihoods = subtree_likelihoods(jump_process, patterns, tuple_idx)
    root = likelihoods[jump_process.tree_model.root_index]
    p = jump_process.frequencies.to(root.dtype) @ root
    return _finalize(p, jump_process.trim_tolerance)


def prior_distrib_site(jump_process: JumpProcess) -> Tensor:
    """Prior distribution of the number of substitutions at a site."""
    return _site_distrib(jump_process, None, None)


def posterior_distrib_site(
    jump_process: JumpProcess, patterns: SitePattern, tuple_idx: int
) -> Tensor:
    """Posterior distribution of the number of substitutions at the sites
    showing a column tuple."""
    return _site_distrib(jump_process, patterns, tuple_idx)


def prior_distrib_alignment(jump_process: JumpProcess, nsites: int) -> Tensor:
    p = prob_vector.convolve_power(prior_distrib_site(jump_process), nsites)
    return _finalize(p, jump_process.trim_tolerance)


def posterior_distrib_alignment(
    jump_process: JumpProcess, patterns: SitePattern
) -> Tensor:
    distribs = [
        posterior_distrib_site(jump_process, patterns, idx)
        for idx in range(patterns.tuple_count)
    ]
    p = prob_vector.convolve_many(distribs, patterns.counts.tolist())
    return _finalize(p, jump_process.trim_tolerance)


def posterior_stats_alignment(
    jump_process: JumpProcess, patterns: SitePattern
) -> tuple[float, float]:
    """Mean and variance of the posterior number of substitutions in an
    alignment."""
    mean = var = 0.0
    for idx, count in enumerate(patterns.counts.tolist()):
        this_mean, this_var = prob_vector.stats(
            posterior_distrib_site(jump_process, patterns, idx)
        )
        mean += this_mean * count
        var += this_var * count
    return mean, var


def joint_distrib_site(
    jump_process: JumpProcess,
    patterns: Optional[SitePattern] = None,
    tuple_idx: int = None,
) -> Tensor:
    """Joint distribution of the numbers of substitutions in the left and
    right subtrees of the root.

    The branch above the left child belongs to the left side. The right
    child is expected to sit on a branch of length zero, as after
    :meth:`~torchsubst.evolution.tree_model.BranchLengthTreeModel.reroot`.

    :param JumpProcess jump_process: jump process
    :param SitePattern patterns: column tuples or None for the prior
    :param int tuple_idx: index of the column tuple
    :return: [N_left, N_right] tensor
    """
    tree_model = jump_process.tree_model
    children = tree_model.children(tree_model.root_index)
    if len(children) != 2:
        raise ValueError('joint distribution requires a bifurcating root')
    left, right = children
    right_length = float(tree_model.branch_lengths()[right])
    if right_length != 0.0:
        logger.warning(
            'right branch of the root has length %f, its substitutions are ignored',
            right_length,
        )

    likelihoods = subtree_likelihoods(jump_process, patterns, tuple_idx)
    left_likelihood = branch_contribution(
        likelihoods[left], jump_process.branch_distrib[left]
    )
    frequencies = jump_process.frequencies.to(left_likelihood.dtype)
    p = torch.einsum('a,an,am->nm', frequencies, left_likelihood, likelihoods[right])
    tolerance = jump_process.trim_tolerance
    return prob_matrix.normalize(
        prob_matrix.trim(prob_matrix.normalize(p), tolerance)
    )


def prior_joint_distrib_alignment(jump_process: JumpProcess, nsites: int) -> Tensor:
    p = prob_matrix.convolve_power(joint_distrib_site(jump_process), nsites)
    return prob_matrix.normalize(
        prob_matrix.trim(prob_matrix.normalize(p), jump_process.trim_tolerance)
    )


def posterior_joint_distrib_alignment(
    jump_process: JumpProcess, patterns: SitePattern
) -> Tensor:
    distribs = [
        joint_distrib_site(jump_process, patterns, idx)
        for idx in range(patterns.tuple_count)
    ]
    p = prob_matrix.convolve_many(distribs, patterns.counts.tolist())
    return prob_matrix.normalize(
        prob_matrix.trim(prob_matrix.normalize(p), jump_process.trim_tolerance)
    )


def joint_marginal_stats(p: Tensor) -> tuple[float, float, float, float, float, float]:
    """Means and variances of the left, right and total marginals of a joint
    distribution as ``(mean_left, var_left, mean_right, var_right, mean_tot,
    var_tot)``."""
    mean_left, var_left = prob_vector.stats(prob_matrix.marginal_x(p))
    mean_right, var_right = prob_vector.stats(prob_matrix.marginal_y(p))
    mean_tot, var_tot = prob_vector.stats(prob_matrix.marginal_total(p))
    return mean_left, var_left, mean_right, var_right, mean_tot, var_tot


def posterior_joint_stats_alignment(
    jump_process: JumpProcess, patterns: SitePattern
) -> tuple[float, float, float, float, float, float]:
    """Means and variances of the posterior numbers of substitutions in the
    left subtree, the right subtree and the whole tree for an alignment."""
    totals = [0.0] * 6
    for idx, count in enumerate(patterns.counts.tolist()):
        site_stats = joint_marginal_stats(joint_distrib_site(jump_process, patterns, idx))
        for i, value in enumerate(site_stats):
            totals[i] += value * count
    return tuple(totals)
