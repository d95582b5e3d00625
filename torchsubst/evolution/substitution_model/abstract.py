from abc import ABC, abstractmethod

import torch

from ...core.model import Model
from ...core.parameter import Parameter
from ...typing import ID


class SubstitutionModel(Model):
    """Continuous-time Markov substitution process.

    Subclasses provide the (unnormalized) rate matrix :math:`Q` and the
    equilibrium frequencies :math:`\\pi`. :meth:`rate_matrix` rescales
    :math:`Q` so that branch lengths are expected numbers of substitutions
    per site.

    :param id_: ID of object
    :param int order: order of the process; models with ``order > 0``
        condition substitutions on neighbouring sites
    """

    _tag = 'substitution_model'

    def __init__(self, id_: ID, order: int = 0) -> None:
        super().__init__(id_)
        self.order = order

    @property
    @abstractmethod
    def frequencies(self) -> torch.Tensor:
        pass

    @abstractmethod
    def q(self) -> torch.Tensor:
        pass

    @property
    def state_count(self) -> int:
        return self.frequencies.shape[-1]

    def norm(self, Q: torch.Tensor) -> torch.Tensor:
        return -torch.sum(torch.diagonal(Q, dim1=-2, dim2=-1) * self.frequencies, -1)

    def rate_matrix(self) -> torch.Tensor:
        Q = self.q()
        return Q / self.norm(Q)


class AbstractSubstitutionModel(SubstitutionModel, ABC):
    def __init__(self, id_: ID, frequencies: Parameter, order: int = 0) -> None:
        super().__init__(id_, order)
        self._frequencies = frequencies
        frequencies.add_parameter_listener(self)

    @property
    def frequencies(self) -> torch.Tensor:
        return self._frequencies.tensor


def reversible_rate_matrix(
    exchangeabilities: torch.Tensor, frequencies: torch.Tensor
) -> torch.Tensor:
    r"""Build :math:`Q_{ij} = r_{ij} \pi_j` from the upper off-diagonal
    exchangeabilities, indexed row by row."""
    state_count = frequencies.shape[-1]
    indices = torch.triu_indices(state_count, state_count, 1)
    R = torch.zeros((state_count, state_count), dtype=frequencies.dtype)
    R[indices[0], indices[1]] = exchangeabilities.to(frequencies.dtype)
    R[indices[1], indices[0]] = exchangeabilities.to(frequencies.dtype)
    Q = R * frequencies.unsqueeze(-2)
    Q[range(state_count), range(state_count)] = -torch.sum(Q, dim=-1)
    return Q
