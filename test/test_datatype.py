import pytest

from torchsubst.core.utils import InvalidCharacterError
from torchsubst.evolution.datatype import GeneralDataType, NucleotideDataType


def test_nucleotide():
    nuc = NucleotideDataType(None)
    assert nuc.state_count == 4
    for idx, code in enumerate('ACGT'):
        assert nuc.encoding(code) == idx
        assert nuc.encoding(code.lower()) == idx
    assert nuc.encoding('U') == 3
    for code in 'NRY-?.':
        assert nuc.is_missing(code)
        assert nuc.encoding(code) == -1
    assert not nuc.is_missing('A')


def test_invalid_character():
    nuc = NucleotideDataType(None)
    with pytest.raises(InvalidCharacterError) as excinfo:
        nuc.state_index('Z')
    assert excinfo.value.character == 'Z'
    assert nuc.state_index('g') == 2


def test_general():
    gen = GeneralDataType.from_json(
        {'id': 'binary', 'type': 'GeneralDataType', 'codes': ['0', '1'], 'missing': 'N?'},
        {},
    )
    assert gen.states == ('0', '1')
    assert gen.state_count == 2
    assert gen.state_index('1') == 1
    assert gen.is_missing('N')
    assert gen.is_missing('-')
    with pytest.raises(InvalidCharacterError):
        gen.state_index('2')
