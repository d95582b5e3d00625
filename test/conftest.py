import pytest
import torch

from torchsubst import Parameter
from torchsubst.evolution.alignment import Alignment, Sequence
from torchsubst.evolution.datatype import GeneralDataType, NucleotideDataType
from torchsubst.evolution.jump_process import JumpProcess
from torchsubst.evolution.site_pattern import SitePattern
from torchsubst.evolution.substitution_model import HKY, RateMatrixSubstitutionModel
from torchsubst.evolution.taxa import Taxa, Taxon
from torchsubst.evolution.tree_model import BranchLengthTreeModel, parse_tree


def make_taxa(*names):
    return Taxa('taxa', [Taxon(name) for name in names])


def make_tree_model(newick, taxa):
    return BranchLengthTreeModel('tree', parse_tree(taxa, {'newick': newick}), taxa)


def two_state_model(rate):
    Q = torch.tensor([[-rate, rate], [rate, -rate]], dtype=torch.float64)
    return RateMatrixSubstitutionModel(
        'ctmc',
        Parameter('Q', Q),
        Parameter('pi', torch.tensor([0.5, 0.5], dtype=torch.float64)),
        normalize=False,
    )


def binary_patterns(taxa, sequences):
    data_type = GeneralDataType('binary', ('0', '1'))
    alignment = Alignment(
        'alignment',
        [Sequence(taxon.id, sequence) for taxon, sequence in zip(taxa, sequences)],
        taxa,
        data_type,
    )
    return SitePattern('patterns', alignment)


def nucleotide_patterns(taxa, sequences):
    alignment = Alignment(
        'alignment',
        [Sequence(taxon.id, sequence) for taxon, sequence in zip(taxa, sequences)],
        taxa,
        NucleotideDataType('dna'),
    )
    return SitePattern('patterns', alignment)


@pytest.fixture
def two_leaf_taxa():
    return make_taxa('A', 'B')


@pytest.fixture
def two_leaf_tree(two_leaf_taxa):
    return make_tree_model('(A:0.5,B:0.5);', two_leaf_taxa)


@pytest.fixture
def two_state_jump_process(two_leaf_tree):
    return JumpProcess('jp', two_state_model(1.3), two_leaf_tree)


@pytest.fixture
def hky_model():
    return HKY(
        'hky',
        Parameter('kappa', torch.tensor([3.0], dtype=torch.float64)),
        Parameter('pi', torch.tensor([0.1, 0.2, 0.3, 0.4], dtype=torch.float64)),
    )


@pytest.fixture
def three_taxa():
    return make_taxa('A', 'B', 'C')


@pytest.fixture
def three_taxa_tree(three_taxa):
    return make_tree_model('((A:0.3,B:0.2):0.4,C:0.5);', three_taxa)
