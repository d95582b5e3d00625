r"""Reversible nucleotide substitution models.

The rate matrices satisfy :math:`\pi_i Q_{ij} = \pi_j Q_{ji}` and are
rescaled by :meth:`~torchsubst.evolution.substitution_model.abstract.SubstitutionModel.rate_matrix`
so that the expected number of substitutions per unit of time is 1.

.. note::
    The order of the equilibrium frequencies in a :class:`~torchsubst.Parameter`
    is expected to be :math:`\pi_A, \pi_C, \pi_G, \pi_T`.
"""
from __future__ import annotations

import torch

from ...core.parameter import Parameter
from ...core.utils import process_object, register_class
from ...typing import ID
from .abstract import AbstractSubstitutionModel, reversible_rate_matrix


@register_class
class JC69(AbstractSubstitutionModel):
    r"""Jukes-Cantor (JC69) substitution model.

    .. math::

        Q =
        \begin{bmatrix}
        -1 & 1/3 & 1/3 & 1/3 \\
        1/3 & -1 & 1/3 & 1/3 \\
        1/3 & 1/3 & -1 & 1/3 \\
        1/3 & 1/3 & 1/3 & -1
        \end{bmatrix}
    """

    def __init__(self, id_: ID) -> None:
        super().__init__(id_, Parameter(None, torch.full((4,), 0.25, dtype=torch.float64)))

    def q(self) -> torch.Tensor:
        Q = torch.full((4, 4), 1.0 / 3, dtype=self.frequencies.dtype)
        Q[range(4), range(4)] = -1.0
        return Q

    @classmethod
    def from_json(cls, data, dic):
        return cls(data['id'])


@register_class
class HKY(AbstractSubstitutionModel):
    r"""Hasegawa-Kishino-Yano (HKY) substitution model.

    Transitions (A<->G, C<->T) occur :math:`\kappa` times faster than
    transversions.
    """

    def __init__(self, id_: ID, kappa: Parameter, frequencies: Parameter) -> None:
        super().__init__(id_, frequencies)
        self._kappa = kappa
        kappa.add_parameter_listener(self)

    @property
    def kappa(self) -> torch.Tensor:
        return self._kappa.tensor

    def q(self) -> torch.Tensor:
        one = torch.ones_like(self.kappa.reshape(-1)[0])
        kappa = self.kappa.reshape(-1)[0]
        # AC AG AT CG CT GT
        exchangeabilities = torch.stack((one, kappa, one, one, kappa, one))
        return reversible_rate_matrix(exchangeabilities, self.frequencies)

    @classmethod
    def from_json(cls, data, dic):
        id_ = data['id']
        kappa = process_object(data['kappa'], dic)
        frequencies = process_object(data['frequencies'], dic)
        return cls(id_, kappa, frequencies)


@register_class
class GTR(AbstractSubstitutionModel):
    r"""General Time Reversible (GTR) substitution model.

    .. note::
        The order of the rate parameters in a :class:`~torchsubst.Parameter` is
        expected to be :math:`r_{AC}, r_{AG}, r_{AT}, r_{CG}, r_{CT}, r_{GT}`.
    """

    def __init__(self, id_: ID, rates: Parameter, frequencies: Parameter):
        super().__init__(id_, frequencies)
        self._rates = rates
        rates.add_parameter_listener(self)

    @property
    def rates(self) -> torch.Tensor:
        return self._rates.tensor

    def q(self) -> torch.Tensor:
        return reversible_rate_matrix(self.rates, self.frequencies)

    @classmethod
    def from_json(cls, data, dic):
        id_ = data['id']
        rates = process_object(data['rates'], dic)
        frequencies = process_object(data['frequencies'], dic)
        return cls(id_, rates, frequencies)
