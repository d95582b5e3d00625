r"""Uniformized jump process of a substitution model on a tree.

The continuous-time chain with rate matrix :math:`Q` is embedded in a
discrete chain with transition matrix :math:`R = Q/\lambda + I` whose jumps
occur at the times of a Poisson process of rate
:math:`\lambda = \max_i -Q_{ii}`. Some jumps are self-jumps, the others are
substitutions. Counting substitutions among :math:`j` jumps is a discrete
recursion and a branch of length :math:`t` mixes it over
:math:`j \sim \text{Poisson}(\lambda t)`.
"""
from __future__ import annotations

import logging

import torch
from torch import Tensor

from ..core.model import Model
from ..core.utils import JumpCapExceededError, process_object, register_class
from ..ops.prob_vector import POISSON_TOLERANCE, TRIM_TOLERANCE, normalize, poisson
from ..typing import ID, OptionalTensor
from .substitution_model.abstract import SubstitutionModel
from .tree_model import TreeModel

logger = logging.getLogger(__name__)

MIN_JUMPS = 20
JUMPS_PER_UNIT_LENGTH = 15


def substitutions_and_states_given_jumps(
    R: Tensor, jmax: int, boundary: Tensor
) -> Tensor:
    r"""Probability of ending in a state after :math:`n` substitutions and
    :math:`j` jumps.

    ``table[..., i, n, j]`` is filled for :math:`0 \le n, j < j_{max}` with

    .. math::

        T_{i,n,j} = T_{i,n,j-1} R_{ii} + \sum_{k \neq i} T_{k,n-1,j-1} R_{ki}

    and :math:`T_{i,0,0}` given by ``boundary``.

    :param Tensor R: jump matrix [S,S]
    :param int jmax: number of jumps
    :param Tensor boundary: initial state distributions [...,S]
    :return: table [...,S,jmax,jmax]
    """
    table = torch.zeros(boundary.shape + (jmax, jmax), dtype=R.dtype)
    table[..., 0, 0] = boundary
    stay = torch.diagonal(R).unsqueeze(-1)
    move = (R - torch.diag(torch.diagonal(R))).t()
    for j in range(1, jmax):
        previous = table[..., j - 1]
        table[..., j] = previous * stay
        table[..., 1:, j] += move @ previous[..., :-1]
    return table


@register_class
class JumpProcess(Model):
    r"""Substitution count tables of a substitution model on a tree.

    The tables are built on first access and rebuilt after the
    substitution model or the tree model change.

    - ``A[i, n, j]``: probability of state :math:`i` and :math:`n`
      substitutions after :math:`j` jumps starting from the equilibrium
      frequencies.
    - ``B[a, i, n, j]``: same as ``A`` starting from state :math:`a`.
    - ``M[n, j]``: ``A`` summed over the final state.
    - ``branch_distrib[node]``: :meth:`distrib_branch_conditional` of the
      branch above ``node``, ``None`` for the root.

    :param id_: ID of object
    :param SubstitutionModel substitution_model: substitution model
    :param TreeModel tree_model: tree model
    :param float trim_tolerance: trailing probabilities below this value are
        dropped from distributions
    :param float poisson_tolerance: upper tail mass ignored in the
        distributions of the number of jumps
    """

    _tag = 'jump_process'

    def __init__(
        self,
        id_: ID,
        substitution_model: SubstitutionModel,
        tree_model: TreeModel,
        trim_tolerance: float = TRIM_TOLERANCE,
        poisson_tolerance: float = POISSON_TOLERANCE,
    ) -> None:
        super().__init__(id_)
        self.substitution_model = substitution_model
        self.tree_model = tree_model
        self.trim_tolerance = trim_tolerance
        self.poisson_tolerance = poisson_tolerance
        substitution_model.add_model_listener(self)
        tree_model.add_model_listener(self)
        self._needs_update = True

    def handle_model_changed(self, model, obj, index) -> None:
        self._needs_update = True
        self.fire_model_changed()

    def update(self) -> None:
        if not self._needs_update:
            return
        Q = self.substitution_model.rate_matrix()
        self._lambda = float(torch.max(-torch.diagonal(Q)))
        if self._lambda <= 0.0:
            raise ValueError('rate matrix has no positive rate')
        self._R = Q / self._lambda + torch.eye(Q.shape[-1], dtype=Q.dtype)
        total_length = self.tree_model.total_length()
        self._jmax = max(MIN_JUMPS, int(JUMPS_PER_UNIT_LENGTH * total_length))
        logger.debug(
            'jump process: lambda = %f, jmax = %d (tree length %f)',
            self._lambda,
            self._jmax,
            total_length,
        )

        self._A = substitutions_and_states_given_jumps(
            self._R, self._jmax, self.frequencies.to(Q.dtype)
        )
        self._B = substitutions_and_states_given_jumps(
            self._R, self._jmax, torch.eye(Q.shape[-1], dtype=Q.dtype)
        )
        self._M = self._A.sum(0)

        branch_lengths = self.tree_model.branch_lengths()
        branch_distrib = [None] * self.tree_model.node_count
        for node in self.tree_model.postorder:
            if node != self.tree_model.root_index:
                branch_distrib[node] = self._conditional(float(branch_lengths[node]))
        self._branch_distrib = branch_distrib
        self._needs_update = False

    @property
    def frequencies(self) -> Tensor:
        return self.substitution_model.frequencies

    @property
    def state_count(self) -> int:
        return self.substitution_model.state_count

    @property
    def lambda_(self) -> float:
        self.update()
        return self._lambda

    @property
    def R(self) -> Tensor:
        self.update()
        return self._R

    @property
    def jmax(self) -> int:
        self.update()
        return self._jmax

    @property
    def A(self) -> Tensor:
        self.update()
        return self._A

    @property
    def B(self) -> Tensor:
        self.update()
        return self._B

    @property
    def M(self) -> Tensor:
        self.update()
        return self._M

    @property
    def branch_distrib(self) -> list[OptionalTensor]:
        self.update()
        return self._branch_distrib

    def _jumps(self, t: float) -> Tensor:
        pois = poisson(self._lambda * t, self.poisson_tolerance).to(self._R.dtype)
        logger.debug('branch length %f: %d jumps', t, pois.shape[0])
        if pois.shape[0] >= self._jmax:
            raise JumpCapExceededError(pois.shape[0], self._jmax)
        return pois

    def distrib_branch(self, t: float) -> Tensor:
        """Distribution of the number of substitutions on a branch of length
        ``t`` starting from the equilibrium frequencies."""
        self.update()
        pois = self._jumps(t)
        size = pois.shape[0]
        return normalize(self._M[:size, :size] @ pois)

    def distrib_branch_conditional(self, t: float) -> Tensor:
        """Joint distribution of the final state and the number of
        substitutions on a branch of length ``t`` given the initial state.

        :return: ``D[a, b, n]``, each ``D[a]`` summing to 1
        """
        self.update()
        return self._conditional(t)

    def _conditional(self, t: float) -> Tensor:
        pois = self._jumps(t)
        size = pois.shape[0]
        D = self._B[..., :size, :size] @ pois
        return D / D.sum((-2, -1), keepdim=True)

    @classmethod
    def from_json(cls, data, dic):
        id_ = data['id']
        substitution_model = process_object(data[SubstitutionModel.tag()], dic)
        tree_model = process_object(data[TreeModel.tag()], dic)
        optionals = {}
        for key in ('trim_tolerance', 'poisson_tolerance'):
            if key in data:
                optionals[key] = data[key]
        return cls(id_, substitution_model, tree_model, **optionals)
