from __future__ import annotations

import collections
import os

from ..core.model import Identifiable
from ..core.utils import register_class
from ..typing import ID


class Feature(collections.namedtuple('Feature', ['start', 'end', 'name'])):
    """Interval of alignment columns, 1-based and inclusive."""

    __slots__ = ()

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def columns(self) -> range:
        """0-based indices of the columns of the feature."""
        return range(self.start - 1, self.end)


def _data_lines(fp):
    for line in fp:
        line = line.rstrip('\n')
        if not line.strip() or line.startswith(('#', 'track', 'browser')):
            continue
        yield line.split('\t') if '\t' in line else line.split()


def read_bed(filename: str) -> list[Feature]:
    """Read a BED file (0-based, half-open intervals)."""
    features = []
    with open(filename, 'r') as fp:
        for fields in _data_lines(fp):
            start, end = int(fields[1]) + 1, int(fields[2])
            name = fields[3] if len(fields) > 3 else f'{fields[0]}:{start}-{end}'
            features.append(Feature(start, end, name))
    return features


def read_gff(filename: str) -> list[Feature]:
    """Read a GFF file (1-based, inclusive intervals)."""
    features = []
    with open(filename, 'r') as fp:
        for fields in _data_lines(fp):
            start, end = int(fields[3]), int(fields[4])
            name = fields[8] if len(fields) > 8 else fields[2]
            features.append(Feature(start, end, name))
    return features


@register_class
class Features(Identifiable, collections.UserList):
    """Ordered list of features.

    :param id_: ID of object
    :param features: list of :class:`Feature`
    """

    def __init__(self, id_: ID, features: list[Feature]) -> None:
        for feature in features:
            if feature.start < 1 or feature.end < feature.start:
                raise ValueError(
                    f'invalid feature {feature.name} ({feature.start}-{feature.end})'
                )
        Identifiable.__init__(self, id_)
        collections.UserList.__init__(self, features)

    @property
    def max_length(self) -> int:
        return max(feature.length for feature in self.data)

    @classmethod
    def from_json(cls, data, dic):
        id_ = data['id']
        if 'features' in data:
            features = []
            for idx, feature in enumerate(data['features']):
                features.append(
                    Feature(
                        feature['start'],
                        feature['end'],
                        feature.get('name', str(idx + 1)),
                    )
                )
        elif 'file' in data:
            file_format = data.get('format')
            if file_format is None:
                file_format = os.path.splitext(data['file'])[1][1:].lower()
            if file_format == 'bed':
                features = read_bed(data['file'])
            elif file_format in ('gff', 'gtf'):
                features = read_gff(data['file'])
            else:
                raise ValueError(f'unknown feature format `{file_format}\'')
        else:
            raise ValueError('features or file should be specified in Features')
        return cls(id_, features)
