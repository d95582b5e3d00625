from __future__ import annotations

import collections

from ..core.model import Identifiable
from ..core.utils import process_object, register_class
from ..typing import ID
from .datatype import DataType, NucleotideDataType
from .taxa import Taxa

Sequence = collections.namedtuple('Sequence', ['taxon', 'sequence'])


@register_class
class Alignment(Identifiable, collections.UserList):
    """Multiple sequence alignment.

    Sequences are stored in the order of the taxa.

    :param id_: ID of object
    :param sequences: list of sequences
    :param taxa: Taxa object
    :param data_type: alphabet of the sequences
    """

    _tag = 'alignment'

    def __init__(
        self, id_: ID, sequences: list[Sequence], taxa: Taxa, data_type: DataType
    ) -> None:
        lengths = set(len(sequence.sequence) for sequence in sequences)
        if len(lengths) != 1:
            raise ValueError('sequences of the alignment have different lengths')
        self._sequence_size = lengths.pop()
        self._taxa = taxa
        self._data_type = data_type
        indexing = {taxon.id: idx for idx, taxon in enumerate(taxa)}
        missing = [s.taxon for s in sequences if s.taxon not in indexing]
        if len(missing) > 0:
            raise ValueError(
                'sequences without taxon in the Taxa object: ' + ', '.join(missing)
            )
        sequences = sorted(sequences, key=lambda x: indexing[x.taxon])
        Identifiable.__init__(self, id_)
        collections.UserList.__init__(self, sequences)

    @property
    def sequence_size(self) -> int:
        return self._sequence_size

    @property
    def taxa(self) -> Taxa:
        return self._taxa

    @property
    def data_type(self) -> DataType:
        return self._data_type

    @classmethod
    def from_json(cls, data, dic):
        id_ = data['id']
        taxa = process_object(data['taxa'], dic)

        if data.get('datatype', 'nucleotide') == 'nucleotide':
            data_type = NucleotideDataType(None)
        else:
            data_type = process_object(data['datatype'], dic)

        if 'sequences' in data:
            sequences = [
                Sequence(entry['taxon'], entry['sequence']) for entry in data['sequences']
            ]
        elif 'file' in data:
            sequences = read_fasta_sequences(data['file'])
        else:
            raise ValueError('sequences or file should be specified in Alignment')
        return cls(id_, sequences, taxa, data_type)


def read_fasta_sequences(filename: str) -> list[Sequence]:
    """Read a FASTA file, the taxon being the first word of a header."""
    sequences = []
    with open(filename, 'r') as fp:
        taxon, chunks = None, []
        for line in map(str.strip, fp):
            if line.startswith('>'):
                if taxon is not None:
                    sequences.append(Sequence(taxon, ''.join(chunks)))
                taxon, chunks = line[1:].split()[0], []
            elif line:
                chunks.append(line)
        if taxon is not None:
            sequences.append(Sequence(taxon, ''.join(chunks)))
    return sequences
