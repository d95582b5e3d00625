r"""Markov substitution processes.

A substitution process is described by a rate matrix :math:`Q` whose
off-diagonal entries are the instantaneous rates of change between states
and whose rows sum to zero, together with its stationary distribution
:math:`\pi`. The substitution count engine only reads :math:`Q`, :math:`\pi`
and the order of the process.
"""
from torchsubst.evolution.substitution_model.abstract import SubstitutionModel
from torchsubst.evolution.substitution_model.general import (
    GeneralJC69,
    GeneralSymmetricSubstitutionModel,
    RateMatrixSubstitutionModel,
)
from torchsubst.evolution.substitution_model.nucleotide import GTR, HKY, JC69

__all__ = [
    'SubstitutionModel',
    'JC69',
    'HKY',
    'GTR',
    'GeneralJC69',
    'GeneralSymmetricSubstitutionModel',
    'RateMatrixSubstitutionModel',
]
