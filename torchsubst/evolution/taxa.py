import collections

from ..core.model import Identifiable
from ..core.utils import register_class


@register_class
class Taxon(Identifiable, collections.UserDict):
    def __init__(self, id_, attributes=None):
        Identifiable.__init__(self, id_)
        collections.UserDict.__init__(self, attributes or {})

    def __str__(self):
        return self.id

    def __repr__(self):
        return f"Taxon(id={self.id}, attributes={self.data})"

    @classmethod
    def from_json(cls, data, dic):
        if isinstance(data, str):
            return cls(data)
        return cls(data['id'], data.get('attributes', {}))


@register_class
class Taxa(Identifiable, collections.UserList):
    """Ordered collection of taxa shared by a tree and an alignment."""

    def __init__(self, id_, taxa):
        Identifiable.__init__(self, id_)
        collections.UserList.__init__(self, taxa)

    def index_of(self, taxon_id: str) -> int:
        for idx, taxon in enumerate(self.data):
            if taxon.id == taxon_id:
                return idx
        raise KeyError(taxon_id)

    @classmethod
    def from_json(cls, data, dic):
        id_ = data['id']
        taxa = [Taxon.from_json(taxon, dic) for taxon in data['taxa']]
        return cls(id_, taxa)
