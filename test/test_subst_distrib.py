import numpy as np
import pytest
import torch
from conftest import (
    binary_patterns,
    make_taxa,
    make_tree_model,
    nucleotide_patterns,
    two_state_model,
)

from torchsubst import Parameter
from torchsubst.core.utils import InvalidCharacterError, UnsupportedModelOrderError
from torchsubst.evolution.jump_process import JumpProcess
from torchsubst.evolution.subst_distrib import (
    joint_distrib_site,
    joint_marginal_stats,
    posterior_distrib_alignment,
    posterior_distrib_site,
    posterior_joint_distrib_alignment,
    posterior_joint_stats_alignment,
    posterior_stats_alignment,
    prior_distrib_alignment,
    prior_distrib_site,
    prior_joint_distrib_alignment,
)
from torchsubst.evolution.substitution_model import GeneralSymmetricSubstitutionModel
from torchsubst.ops import prob_matrix, prob_vector


def assert_close_padded(p, q, atol=1e-9):
    size = max(p.shape[0], q.shape[0])
    p = torch.nn.functional.pad(p, (0, size - p.shape[0]))
    q = torch.nn.functional.pad(q, (0, size - q.shape[0]))
    np.testing.assert_allclose(p, q, atol=atol)


def test_two_state_prior(two_state_jump_process):
    # every jump is a substitution so the counts are Poisson
    p = prior_distrib_site(two_state_jump_process)
    mean, var = prob_vector.stats(p)
    assert mean == pytest.approx(1.3 * 0.5 + 1.3 * 0.5, rel=1e-8)
    assert var == pytest.approx(1.3 * 0.5 + 1.3 * 0.5, rel=1e-7)
    branch = two_state_jump_process.distrib_branch(0.5)
    assert_close_padded(p, prob_vector.convolve(branch, branch))


def test_two_state_posterior_parity(two_leaf_taxa, two_state_jump_process):
    patterns = binary_patterns(two_leaf_taxa, ['01', '11'])
    different = posterior_distrib_site(two_state_jump_process, patterns, 0)
    same = posterior_distrib_site(two_state_jump_process, patterns, 1)
    assert torch.all(different[0::2] < 1e-12)
    assert torch.all(same[1::2] < 1e-12)
    assert different.sum().item() == pytest.approx(1.0)


def test_missing_column_is_prior(two_leaf_taxa, two_state_jump_process):
    patterns = binary_patterns(two_leaf_taxa, ['-0', '?1'])
    idx = patterns.tuple_idx[0]
    posterior = posterior_distrib_site(two_state_jump_process, patterns, idx)
    prior = prior_distrib_site(two_state_jump_process)
    assert torch.allclose(posterior, prior)


def test_invalid_character(two_leaf_taxa, two_state_jump_process):
    patterns = binary_patterns(two_leaf_taxa, ['X', '1'])
    with pytest.raises(InvalidCharacterError):
        posterior_distrib_site(two_state_jump_process, patterns, 0)


def test_unsupported_order(two_leaf_tree):
    model = GeneralSymmetricSubstitutionModel(
        'model',
        Parameter(None, torch.tensor([0])),
        Parameter(None, torch.tensor([1.0], dtype=torch.float64)),
        Parameter(None, torch.tensor([0.5, 0.5], dtype=torch.float64)),
        order=1,
    )
    jp = JumpProcess('jp', model, two_leaf_tree)
    with pytest.raises(UnsupportedModelOrderError):
        prior_distrib_site(jp)


def test_alignment_distributions(two_leaf_taxa, two_state_jump_process):
    jp = two_state_jump_process
    patterns = binary_patterns(two_leaf_taxa, ['0110', '0100'])
    p = posterior_distrib_alignment(jp, patterns)
    mean, var = posterior_stats_alignment(jp, patterns)
    assert prob_vector.stats(p)[0] == pytest.approx(mean, rel=1e-6)
    assert prob_vector.stats(p)[1] == pytest.approx(var, rel=1e-6)

    prior = prior_distrib_alignment(jp, 4)
    assert prob_vector.stats(prior)[0] == pytest.approx(4 * 1.3, rel=1e-8)


def test_prior_does_not_depend_on_root(hky_model, three_taxa_tree):
    jp = JumpProcess('jp', hky_model, three_taxa_tree)
    prior = prior_distrib_site(jp)
    three_taxa_tree.reroot('A')
    rerooted = prior_distrib_site(jp)
    assert_close_padded(prior, rerooted)


@pytest.fixture
def rerooted_jump_process(hky_model, three_taxa_tree):
    three_taxa_tree.reroot('C')
    return JumpProcess('jp', hky_model, three_taxa_tree)


def test_joint_prior_marginals(rerooted_jump_process):
    jp = rerooted_jump_process
    joint = joint_distrib_site(jp)
    assert_close_padded(prob_matrix.marginal_total(joint), prior_distrib_site(jp))
    assert_close_padded(prob_matrix.marginal_x(joint), jp.distrib_branch(0.5))


def test_joint_posterior_marginals(three_taxa, rerooted_jump_process):
    jp = rerooted_jump_process
    patterns = nucleotide_patterns(three_taxa, ['ACGN', 'ACTT', 'GCT-'])
    for idx in range(patterns.tuple_count):
        joint = joint_distrib_site(jp, patterns, idx)
        posterior = posterior_distrib_site(jp, patterns, idx)
        assert_close_padded(prob_matrix.marginal_total(joint), posterior)


def test_joint_alignment_distributions(three_taxa, rerooted_jump_process):
    jp = rerooted_jump_process
    patterns = nucleotide_patterns(three_taxa, ['AAC', 'AGC', 'GTC'])
    joint = posterior_joint_distrib_alignment(jp, patterns)
    stats = posterior_joint_stats_alignment(jp, patterns)
    for expected, value in zip(stats, joint_marginal_stats(joint)):
        assert value == pytest.approx(expected, rel=1e-6)

    prior = prior_joint_distrib_alignment(jp, 3)
    assert_close_padded(
        prob_matrix.marginal_total(prior), prior_distrib_alignment(jp, 3), atol=1e-8
    )


def test_joint_warns_on_right_branch(hky_model, three_taxa_tree, caplog):
    jp = JumpProcess('jp', hky_model, three_taxa_tree)
    joint_distrib_site(jp)
    assert 'right branch of the root' in caplog.text


def test_unary_root_child(hky_model):
    taxa = make_taxa('A', 'B', 'C')
    tree_model = make_tree_model('((A:0.3,B:0.2):0.4,C:0.5);', taxa)
    tree_model.reroot('C')
    root = tree_model.root_index
    left, right = tree_model.children(root)
    assert tree_model.leaf_taxon(left) == 'C'
    assert len(tree_model.children(right)) == 1
    assert tree_model.branch_lengths()[right].item() == 0.0

    jp = JumpProcess('jp', hky_model, tree_model)
    assert prior_distrib_site(jp).sum().item() == pytest.approx(1.0)


def test_two_state_model_fixture():
    model = two_state_model(2.0)
    assert torch.allclose(model.rate_matrix(), model.q())
