from __future__ import annotations

import abc

from ..core.model import Identifiable
from ..core.utils import InvalidCharacterError, register_class
from ..typing import ID

GAP_CHARACTER = '-'


class DataType(Identifiable, abc.ABC):
    @property
    @abc.abstractmethod
    def states(self) -> tuple[str, ...]:
        pass

    @property
    @abc.abstractmethod
    def state_count(self) -> int:
        pass

    @abc.abstractmethod
    def encoding(self, string: str) -> int:
        """Return the index of a character in the alphabet or -1."""
        pass

    @abc.abstractmethod
    def is_missing(self, string: str) -> bool:
        """Return True for missing data and gap characters."""
        pass

    def state_index(self, string: str) -> int:
        """Return the index of an observed character.

        :raises InvalidCharacterError: if the character is not in the alphabet
        """
        index = self.encoding(string)
        if index < 0:
            raise InvalidCharacterError(string)
        return index


class AbstractDataType(DataType, abc.ABC):
    def __init__(self, id_: ID, states: tuple[str, ...], missing: str):
        super().__init__(id_)
        self._states = states
        self._state_count = len(states)
        self._missing = frozenset(missing + GAP_CHARACTER)
        self._encoding = {state: idx for idx, state in enumerate(states)}

    @property
    def states(self) -> tuple[str, ...]:
        return self._states

    @property
    def state_count(self) -> int:
        return self._state_count

    @property
    def missing(self) -> frozenset[str]:
        return self._missing

    def encoding(self, string: str) -> int:
        return self._encoding.get(string, -1)

    def is_missing(self, string: str) -> bool:
        return string in self._missing


@register_class
class NucleotideDataType(AbstractDataType):
    """DNA alphabet ACGT.

    Lower case characters are accepted, U is read as T and the IUPAC
    ambiguity codes are treated as missing data.
    """

    AMBIGUITY_CODES = 'RYMWSKBDHVN'

    def __init__(self, id_: ID):
        super().__init__(
            id_,
            ('A', 'C', 'G', 'T'),
            NucleotideDataType.AMBIGUITY_CODES
            + NucleotideDataType.AMBIGUITY_CODES.lower()
            + '?*.',
        )
        for state, idx in list(self._encoding.items()):
            self._encoding[state.lower()] = idx
        self._encoding['U'] = self._encoding['u'] = 3

    @classmethod
    def from_json(cls, data, dic):
        return cls(data['id'])


@register_class
class GeneralDataType(AbstractDataType):
    """Alphabet made of arbitrary single character codes.

    :param codes: characters of the alphabet, in state order
    :param str missing: characters denoting missing data (gaps are always
        missing)
    """

    def __init__(self, id_: ID, codes: tuple[str, ...], missing: str = '?'):
        super().__init__(id_, tuple(codes), missing)

    @classmethod
    def from_json(cls, data, dic):
        id_ = data['id']
        codes = data['codes']
        missing = data.get('missing', '?')
        return cls(id_, codes, missing)
