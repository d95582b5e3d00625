from __future__ import annotations

from collections import Counter
from typing import Optional

import torch

from ..core.model import Model
from ..core.utils import process_object, register_class
from .alignment import Alignment


@register_class
class SitePattern(Model):
    """Sufficient statistics of an alignment.

    Identical columns are collapsed into column tuples. ``counts[t]`` is the
    number of columns showing tuple ``t`` and ``tuple_idx[i]`` is the tuple
    of the i-th column (0-based).

    :param id_: ID of object
    :param Alignment alignment: sequence alignment
    """

    _tag = 'site_pattern'

    def __init__(self, id_: Optional[str], alignment: Alignment) -> None:
        super().__init__(id_)
        self.alignment = alignment
        self.patterns, self.counts, self.tuple_idx = compress(alignment)
        self._rows = {sequence.taxon: idx for idx, sequence in enumerate(alignment)}

    @property
    def data_type(self):
        return self.alignment.data_type

    @property
    def taxa(self):
        return self.alignment.taxa

    @property
    def tuple_count(self) -> int:
        return len(self.patterns)

    @property
    def sequence_size(self) -> int:
        return len(self.tuple_idx)

    def sequence_index(self, taxon: str) -> int:
        """Return the row of the sequence of a taxon in the column tuples."""
        try:
            return self._rows[taxon]
        except KeyError:
            raise ValueError(f"no sequence for taxon `{taxon}\' in alignment") from None

    def character(self, taxon_index: int, tuple_idx: int) -> str:
        return self.patterns[tuple_idx][taxon_index]

    def used_tuples(self, columns) -> set[int]:
        """Return the tuples observed in the given 0-based columns."""
        return {self.tuple_idx[column] for column in columns}

    @classmethod
    def from_json(cls, data, dic):
        id_ = data['id']
        alignment = process_object(data['alignment'], dic)
        return cls(id_, alignment)


def compress(alignment: Alignment) -> tuple[list[tuple[str, ...]], torch.Tensor, list[int]]:
    """Compress alignment into column tuples.

    :param Alignment alignment: sequence alignment
    :return: a tuple containing the column tuples (one character per taxon),
        their counts and the tuple index of every column
    :rtype: Tuple[List[Tuple[str]], torch.Tensor, List[int]]
    """
    _, sequences = zip(*alignment)
    columns = list(zip(*sequences))
    count_dict = Counter(columns)
    pattern_ordering = sorted(list(count_dict.keys()))
    pattern_index = {pattern: idx for idx, pattern in enumerate(pattern_ordering)}
    counts = torch.tensor(
        [count_dict[pattern] for pattern in pattern_ordering], dtype=torch.long
    )
    tuple_idx = [pattern_index[column] for column in columns]
    return pattern_ordering, counts, tuple_idx
