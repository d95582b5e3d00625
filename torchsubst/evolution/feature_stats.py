r"""Conservation and acceleration statistics of genomic features.

The prior distribution of the number of substitutions in a feature of
length :math:`L` is the :math:`L`-fold convolution power of the site prior.
It is assembled from the cached powers :math:`2^i` of the binary expansion
of :math:`L`. Posterior moments are additive over the columns of a feature
and are not convolved.

Joint (left/right subtree) priors grow quadratically with the length of a
feature. They are convolved exactly only up to the length given by
:func:`max_convolve_len`; longer features use the convolution of the two
marginals and flag their conditional p-values as approximate.
"""
from __future__ import annotations

import collections
import csv
import logging
import math
import sys
from timeit import default_timer as timer
from typing import Optional, TextIO

from torch import Tensor

from ..core.model import Identifiable, Runnable
from ..core.utils import process_object, register_class
from ..ops import prob_matrix, prob_vector
from ..ops.prob_vector import Tail
from ..typing import ID
from .features import Feature, Features
from .jump_process import JumpProcess
from .site_pattern import SitePattern
from .subst_distrib import (
    joint_distrib_site,
    joint_marginal_stats,
    posterior_distrib_alignment,
    posterior_distrib_site,
    posterior_joint_distrib_alignment,
    prior_distrib_alignment,
    prior_distrib_site,
    prior_joint_distrib_alignment,
)

logger = logging.getLogger(__name__)

MAX_CONVOLVE_SIZE = 22500000
PRIOR_CONFIDENCE = 0.95
# features longer than this bound their joint prior with the CLT
CLT_MIN_LENGTH = 25

FeatureStat = collections.namedtuple(
    'FeatureStat',
    [
        'prior_mean',
        'prior_var',
        'prior_min',
        'prior_max',
        'post_mean',
        'post_var',
        'post_min',
        'post_max',
        'p_cons',
        'p_anti_cons',
    ],
)

JointFeatureStat = collections.namedtuple(
    'JointFeatureStat',
    [
        'prior_mean_left',
        'prior_var_left',
        'prior_min_left',
        'prior_max_left',
        'prior_mean_right',
        'prior_var_right',
        'prior_min_right',
        'prior_max_right',
        'post_mean_left',
        'post_var_left',
        'post_min_left',
        'post_max_left',
        'post_mean_right',
        'post_var_right',
        'post_min_right',
        'post_max_right',
        'post_mean_tot',
        'post_var_tot',
        'post_min_tot',
        'post_max_tot',
        'p_cons_left',
        'p_anti_cons_left',
        'p_cons_right',
        'p_anti_cons_right',
        'cond_p_cons_left',
        'cond_p_anti_cons_left',
        'cond_p_cons_right',
        'cond_p_anti_cons_right',
        'cond_p_approx',
    ],
)


def binary_powers(length: int) -> list[int]:
    """Exponents of the powers of two summing to ``length``."""
    return [i for i in range(length.bit_length()) if (length >> i) & 1]


def _used_tuples(patterns: SitePattern, features: list[Feature]) -> set[int]:
    used = set()
    for feature in features:
        if feature.end > patterns.sequence_size:
            raise ValueError(
                f'feature {feature.name} ends after the last column of the alignment'
            )
        used |= patterns.used_tuples(feature.columns())
    return used


def _posterior_interval(mean: float, var: float, ci: Optional[float]) -> tuple[int, int]:
    if ci is not None:
        low, high = prob_vector.norm_confidence_interval(mean, math.sqrt(var), ci)
    else:
        low = high = mean
    return math.floor(low), math.ceil(high)


def _trim_vector(p: Tensor, tolerance: float) -> Tensor:
    return prob_vector.normalize(prob_vector.trim(p, tolerance))


def _trim_matrix(p: Tensor, tolerance: float) -> Tensor:
    return prob_matrix.normalize(prob_matrix.trim(p, tolerance))


def _log_timing(stream: Optional[TextIO], message: str, *args) -> None:
    logger.debug(message, *args)
    if stream is not None:
        stream.write(message % args + '\n')


def p_value_many(
    jump_process: JumpProcess,
    patterns: SitePattern,
    features: list[Feature],
    ci: Optional[float] = None,
) -> list[FeatureStat]:
    """Prior and posterior statistics of the number of substitutions in
    every feature.

    :param JumpProcess jump_process: jump process
    :param SitePattern patterns: column tuples of the alignment
    :param features: features
    :param float ci: mass of the normal confidence interval of the posterior,
        the posterior mean is used if None
    :return: one :class:`FeatureStat` per feature
    """
    if len(features) == 0:
        return []
    used = _used_tuples(patterns, features)
    max_length = max(feature.length for feature in features)
    tolerance = jump_process.trim_tolerance

    pow_p = [prior_distrib_site(jump_process)]
    for _ in range(1, max_length.bit_length()):
        pow_p.append(
            _trim_vector(prob_vector.convolve(pow_p[-1], pow_p[-1]), tolerance)
        )

    post_mean = {}
    post_var = {}
    for idx in sorted(used):
        post_mean[idx], post_var[idx] = prob_vector.stats(
            posterior_distrib_site(jump_process, patterns, idx)
        )

    stats = []
    for feature in features:
        prior = prob_vector.convolve_many(
            [pow_p[i] for i in binary_powers(feature.length)]
        )
        prior_mean, prior_var = prob_vector.stats(prior)
        prior_min, prior_max = prob_vector.confidence_interval(prior, PRIOR_CONFIDENCE)

        columns = [patterns.tuple_idx[column] for column in feature.columns()]
        mean = sum(post_mean[idx] for idx in columns)
        var = sum(post_var[idx] for idx in columns)
        post_min, post_max = _posterior_interval(mean, var, ci)

        stats.append(
            FeatureStat(
                prior_mean,
                prior_var,
                prior_min,
                prior_max,
                mean,
                var,
                post_min,
                post_max,
                prob_vector.p_value(prior, post_max, Tail.LOWER),
                prob_vector.p_value(prior, post_min, Tail.UPPER),
            )
        )
    return stats


def max_convolve_len(
    max_convolve_size: int, mean_l: float, sd_l: float, mean_r: float, sd_r: float
) -> int:
    r"""Largest feature length whose joint prior fits in ``max_convolve_size``
    elements.

    The size of the joint prior of :math:`L` sites is bounded by
    :math:`(L \mu_l + 6 \sigma_l \sqrt{L})(L \mu_r + 6 \sigma_r \sqrt{L})`.
    The search starts from the lower bound obtained by replacing
    :math:`\sqrt{L}` with :math:`L`.
    """
    denominator = (mean_l + 6 * sd_l) * (mean_r + 6 * sd_r)
    if denominator <= 0.0:
        return sys.maxsize
    length = int(math.sqrt(max_convolve_size / denominator))
    while True:
        length += 1
        size = (length * mean_l + 6 * sd_l * math.sqrt(length)) * (
            length * mean_r + 6 * sd_r * math.sqrt(length)
        )
        if size >= max_convolve_size:
            return length - 1


def p_value_joint_many(
    jump_process: JumpProcess,
    patterns: SitePattern,
    features: list[Feature],
    ci: Optional[float] = None,
    max_convolve_size: int = MAX_CONVOLVE_SIZE,
    timing: Optional[TextIO] = None,
) -> list[JointFeatureStat]:
    """Left/right subtree version of :func:`p_value_many`.

    The tree of the jump process is expected to be rerooted with a zero
    length right branch (see :func:`~torchsubst.evolution.subst_distrib.joint_distrib_site`).

    :param JumpProcess jump_process: jump process
    :param SitePattern patterns: column tuples of the alignment
    :param features: features
    :param float ci: mass of the normal confidence interval of the posterior,
        the posterior mean is used if None
    :param int max_convolve_size: maximum number of elements of an exactly
        convolved joint prior
    :param timing: stream receiving the duration of every convolution
    :return: one :class:`JointFeatureStat` per feature
    """
    if len(features) == 0:
        return []
    used = _used_tuples(patterns, features)
    max_length = max(feature.length for feature in features)
    tolerance = jump_process.trim_tolerance

    prior_site = joint_distrib_site(jump_process)
    mean_left, mean_right, var_left, var_right, _ = prob_matrix.stats(prior_site)
    prior_site_left = prob_matrix.marginal_x(prior_site)
    prior_site_right = prob_matrix.marginal_y(prior_site)

    max_conv_len = max_convolve_len(
        max_convolve_size,
        mean_left,
        math.sqrt(var_left),
        mean_right,
        math.sqrt(var_right),
    )
    cache_length = max(1, min(max_length, max_conv_len))

    pow_p = [prior_site]
    for i in range(1, cache_length.bit_length()):
        start = timer()
        pow_p.append(
            _trim_matrix(prob_matrix.convolve(pow_p[-1], pow_p[-1]), tolerance)
        )
        _log_timing(
            timing,
            'pow_p[%d] (%d x %d): %f sec',
            i,
            pow_p[i].shape[0],
            pow_p[i].shape[1],
            timer() - start,
        )

    post = {}
    for idx in sorted(used):
        post[idx] = joint_marginal_stats(joint_distrib_site(jump_process, patterns, idx))

    stats = []
    for feature in features:
        length = feature.length
        if length > CLT_MIN_LENGTH:
            max_rows = math.ceil(length * mean_left + 6 * math.sqrt(length * var_left))
            max_cols = math.ceil(
                length * mean_right + 6 * math.sqrt(length * var_right)
            )
        else:
            max_rows = pow_p[0].shape[0] * length
            max_cols = pow_p[0].shape[1] * length
        max_rows, max_cols = max(1, max_rows), max(1, max_cols)

        if length <= max_conv_len:
            start = timer()
            prior = prob_matrix.convolve_many_fast(
                [pow_p[i] for i in binary_powers(length)], max_rows, max_cols
            )
            _log_timing(
                timing,
                'len = %d (%d x %d): %f sec',
                length,
                max_rows,
                max_cols,
                timer() - start,
            )
            prior_left = prob_matrix.marginal_x(prior)
            prior_right = prob_matrix.marginal_y(prior)
        else:
            prior = None
            prior_left = prob_vector.convolve_power(prior_site_left, length)
            prior_right = prob_vector.convolve_power(prior_site_right, length)
            _log_timing(
                timing,
                'len = %d (%d x %d): [skipping joint convolution]',
                length,
                max_rows,
                max_cols,
            )

        stats.append(
            _joint_feature_stat(
                prior, prior_left, prior_right, feature, patterns, post, ci
            )
        )
    return stats


def _joint_feature_stat(
    prior: Optional[Tensor],
    prior_left: Tensor,
    prior_right: Tensor,
    feature: Feature,
    patterns: SitePattern,
    post: dict,
    ci: Optional[float],
) -> JointFeatureStat:
    prior_mean_left, prior_var_left = prob_vector.stats(prior_left)
    prior_min_left, prior_max_left = prob_vector.confidence_interval(
        prior_left, PRIOR_CONFIDENCE
    )
    prior_mean_right, prior_var_right = prob_vector.stats(prior_right)
    prior_min_right, prior_max_right = prob_vector.confidence_interval(
        prior_right, PRIOR_CONFIDENCE
    )

    # mean_left, var_left, mean_right, var_right, mean_tot, var_tot
    sums = [0.0] * 6
    for column in feature.columns():
        for i, value in enumerate(post[patterns.tuple_idx[column]]):
            sums[i] += value
    post_mean_left, post_var_left, post_mean_right, post_var_right = sums[:4]
    post_mean_tot, post_var_tot = sums[4:]
    post_min_left, post_max_left = _posterior_interval(post_mean_left, post_var_left, ci)
    post_min_right, post_max_right = _posterior_interval(
        post_mean_right, post_var_right, ci
    )
    post_min_tot, post_max_tot = _posterior_interval(post_mean_tot, post_var_tot, ci)

    if prior is not None:
        x_given_min = prob_matrix.x_given_total(prior, post_min_tot)
        x_given_max = prob_matrix.x_given_total(prior, post_max_tot)
        y_given_min = prob_matrix.y_given_total(prior, post_min_tot)
        y_given_max = prob_matrix.y_given_total(prior, post_max_tot)
    else:
        x_given_min = prob_matrix.x_given_total_independent(
            post_min_tot, prior_left, prior_right
        )
        x_given_max = prob_matrix.x_given_total_independent(
            post_max_tot, prior_left, prior_right
        )
        y_given_min = prob_matrix.y_given_total_independent(
            post_min_tot, prior_left, prior_right
        )
        y_given_max = prob_matrix.y_given_total_independent(
            post_max_tot, prior_left, prior_right
        )

    return JointFeatureStat(
        prior_mean_left,
        prior_var_left,
        prior_min_left,
        prior_max_left,
        prior_mean_right,
        prior_var_right,
        prior_min_right,
        prior_max_right,
        post_mean_left,
        post_var_left,
        post_min_left,
        post_max_left,
        post_mean_right,
        post_var_right,
        post_min_right,
        post_max_right,
        post_mean_tot,
        post_var_tot,
        post_min_tot,
        post_max_tot,
        prob_vector.p_value(prior_left, post_max_left, Tail.LOWER),
        prob_vector.p_value(prior_left, post_min_left, Tail.UPPER),
        prob_vector.p_value(prior_right, post_max_right, Tail.LOWER),
        prob_vector.p_value(prior_right, post_min_right, Tail.UPPER),
        prob_vector.p_value(x_given_min, post_max_left, Tail.LOWER),
        prob_vector.p_value(x_given_max, post_min_left, Tail.UPPER),
        prob_vector.p_value(y_given_min, post_max_right, Tail.LOWER),
        prob_vector.p_value(y_given_max, post_min_right, Tail.UPPER),
        prior is None,
    )


def _open_output(file_name: Optional[str]) -> TextIO:
    return open(file_name, 'w') if file_name else sys.stdout


@register_class
class FeatureStatistics(Identifiable, Runnable):
    """Write the statistics of every feature to a CSV file.

    :param id_: ID of object
    :param JumpProcess jump_process: jump process
    :param SitePattern site_pattern: column tuples of the alignment
    :param Features features: features
    :param float ci: mass of the normal confidence interval of the posterior
    :param bool joint: compute left/right subtree statistics
    :param int max_convolve_size: maximum number of elements of an exactly
        convolved joint prior
    :param str file_name: output file, stdout if None
    :param str timing_file: file receiving convolution timings
    """

    def __init__(
        self,
        id_: ID,
        jump_process: JumpProcess,
        site_pattern: SitePattern,
        features: Features,
        ci: Optional[float] = None,
        joint: bool = False,
        max_convolve_size: int = MAX_CONVOLVE_SIZE,
        file_name: Optional[str] = None,
        timing_file: Optional[str] = None,
    ) -> None:
        super().__init__(id_)
        self.jump_process = jump_process
        self.site_pattern = site_pattern
        self.features = features
        self.ci = ci
        self.joint = joint
        self.max_convolve_size = max_convolve_size
        self.file_name = file_name
        self.timing_file = timing_file

    def statistics(self, timing: Optional[TextIO] = None) -> list:
        if self.joint:
            return p_value_joint_many(
                self.jump_process,
                self.site_pattern,
                self.features,
                self.ci,
                self.max_convolve_size,
                timing,
            )
        return p_value_many(
            self.jump_process, self.site_pattern, self.features, self.ci
        )

    def run(self) -> None:
        timing = open(self.timing_file, 'w') if self.timing_file else None
        try:
            stats = self.statistics(timing)
        finally:
            if timing is not None:
                timing.close()

        fields = JointFeatureStat._fields if self.joint else FeatureStat._fields
        f = _open_output(self.file_name)
        writer = csv.writer(f)
        writer.writerow(['name', 'start', 'end'] + list(fields))
        for feature, stat in zip(self.features, stats):
            writer.writerow([feature.name, feature.start, feature.end] + list(stat))
        if self.file_name:
            f.close()

    @classmethod
    def from_json(cls, data, dic):
        id_ = data['id']
        jump_process = process_object(data[JumpProcess.tag()], dic)
        site_pattern = process_object(data[SitePattern.tag()], dic)
        features = process_object(data['features'], dic)
        optionals = {}
        for key in ('ci', 'joint', 'max_convolve_size', 'file_name', 'timing_file'):
            if key in data:
                optionals[key] = data[key]
        return cls(id_, jump_process, site_pattern, features, **optionals)


@register_class
class SubstitutionDistribution(Identifiable, Runnable):
    """Write the distribution of the number of substitutions in an alignment
    to a CSV file.

    The prior distribution of ``nsites`` sites is written when no site
    pattern is given.

    :param id_: ID of object
    :param JumpProcess jump_process: jump process
    :param SitePattern site_pattern: column tuples of the alignment or None
    :param int nsites: number of sites of the prior distribution
    :param bool joint: joint distribution of the left and right subtrees
    :param str file_name: output file, stdout if None
    """

    def __init__(
        self,
        id_: ID,
        jump_process: JumpProcess,
        site_pattern: Optional[SitePattern] = None,
        nsites: int = 1,
        joint: bool = False,
        file_name: Optional[str] = None,
    ) -> None:
        super().__init__(id_)
        self.jump_process = jump_process
        self.site_pattern = site_pattern
        self.nsites = nsites
        self.joint = joint
        self.file_name = file_name

    def distribution(self) -> Tensor:
        if self.site_pattern is None:
            if self.joint:
                return prior_joint_distrib_alignment(self.jump_process, self.nsites)
            return prior_distrib_alignment(self.jump_process, self.nsites)
        if self.joint:
            return posterior_joint_distrib_alignment(self.jump_process, self.site_pattern)
        return posterior_distrib_alignment(self.jump_process, self.site_pattern)

    def run(self) -> None:
        p = self.distribution()
        f = _open_output(self.file_name)
        writer = csv.writer(f)
        if self.joint:
            writer.writerow(['n_left', 'n_right', 'p'])
            for n_left, row in enumerate(p.tolist()):
                for n_right, value in enumerate(row):
                    writer.writerow([n_left, n_right, value])
        else:
            writer.writerow(['n', 'p'])
            for n, value in enumerate(p.tolist()):
                writer.writerow([n, value])
        if self.file_name:
            f.close()

    @classmethod
    def from_json(cls, data, dic):
        id_ = data['id']
        jump_process = process_object(data[JumpProcess.tag()], dic)
        optionals = {}
        if SitePattern.tag() in data:
            optionals['site_pattern'] = process_object(data[SitePattern.tag()], dic)
        for key in ('nsites', 'joint', 'file_name'):
            if key in data:
                optionals[key] = data[key]
        return cls(id_, jump_process, **optionals)
