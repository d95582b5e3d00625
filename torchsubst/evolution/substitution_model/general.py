from __future__ import annotations

import torch

from ...core.parameter import Parameter
from ...core.utils import process_object, register_class
from ...typing import ID
from .abstract import AbstractSubstitutionModel, reversible_rate_matrix


@register_class
class GeneralJC69(AbstractSubstitutionModel):
    """Jukes-Cantor model generalized to any number of states."""

    def __init__(self, id_: ID, state_count: int) -> None:
        super().__init__(
            id_,
            Parameter(
                None, torch.full((state_count,), 1.0 / state_count, dtype=torch.float64)
            ),
        )

    def q(self) -> torch.Tensor:
        state_count = self.state_count
        Q = torch.full(
            (state_count, state_count),
            1.0 / (state_count - 1),
            dtype=self.frequencies.dtype,
        )
        Q[range(state_count), range(state_count)] = -1.0
        return Q

    @classmethod
    def from_json(cls, data, dic):
        return cls(data['id'], data['state_count'])


@register_class
class GeneralSymmetricSubstitutionModel(AbstractSubstitutionModel):
    r"""General reversible substitution model.

    :math:`Q_{ij} = r_{f(k)} \pi_j` for :math:`i \neq j` where :math:`k`
    enumerates the upper off-diagonal elements row by row and
    :math:`f` is given by ``mapping``.

    :param id_: ID of object
    :param Parameter mapping: index of the rate of every upper off-diagonal
        element
    :param Parameter rates: rate parameters
    :param Parameter frequencies: equilibrium frequencies
    :param int order: order of the process
    """

    def __init__(
        self,
        id_: ID,
        mapping: Parameter,
        rates: Parameter,
        frequencies: Parameter,
        order: int = 0,
    ) -> None:
        super().__init__(id_, frequencies, order)
        self._rates = rates
        self.mapping = mapping
        rates.add_parameter_listener(self)

    @property
    def rates(self) -> torch.Tensor:
        return self._rates.tensor

    def q(self) -> torch.Tensor:
        return reversible_rate_matrix(
            self.rates[self.mapping.tensor.long()], self.frequencies
        )

    @classmethod
    def from_json(cls, data, dic):
        id_ = data['id']
        rates = process_object(data['rates'], dic)
        frequencies = process_object(data['frequencies'], dic)
        state_count = frequencies.shape[-1]
        if 'mapping' not in data:
            mapping_count = state_count * (state_count - 1) // 2
            mapping = Parameter(None, torch.arange(mapping_count))
        elif isinstance(data['mapping'], list):
            mapping = Parameter(None, torch.tensor(data['mapping']))
        else:
            mapping = process_object(data['mapping'], dic)
        return cls(id_, mapping, rates, frequencies, data.get('order', 0))


@register_class
class RateMatrixSubstitutionModel(AbstractSubstitutionModel):
    """Substitution model defined directly by its rate matrix.

    The rows of the matrix are expected to sum to zero.

    :param id_: ID of object
    :param Parameter rate_matrix: square rate matrix
    :param Parameter frequencies: equilibrium frequencies
    :param bool normalize: rescale the matrix to one expected substitution
        per unit of time
    :param int order: order of the process
    """

    def __init__(
        self,
        id_: ID,
        rate_matrix: Parameter,
        frequencies: Parameter,
        normalize: bool = True,
        order: int = 0,
    ) -> None:
        super().__init__(id_, frequencies, order)
        self._rate_matrix = rate_matrix
        self.normalize = normalize
        rate_matrix.add_parameter_listener(self)

    def q(self) -> torch.Tensor:
        return self._rate_matrix.tensor

    def rate_matrix(self) -> torch.Tensor:
        if self.normalize:
            return super().rate_matrix()
        return self.q()

    @classmethod
    def from_json(cls, data, dic):
        id_ = data['id']
        rate_matrix = process_object(data['rate_matrix'], dic)
        frequencies = process_object(data['frequencies'], dic)
        return cls(
            id_,
            rate_matrix,
            frequencies,
            data.get('normalize', True),
            data.get('order', 0),
        )
