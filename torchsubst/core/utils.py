from __future__ import annotations

import importlib
import logging
import pkgutil
from typing import Any

# classes that can be referred to by their name in a JSON configuration
REGISTERED_CLASSES = {}


class JSONParseError(Exception):
    ...


class SubstitutionDistributionError(Exception):
    """Base class of the errors raised while computing substitution count
    distributions."""


class InvalidCharacterError(SubstitutionDistributionError):
    """An alignment character is neither in the alphabet nor a missing data
    or gap character."""

    def __init__(self, character: str) -> None:
        super().__init__(f"bad character in alignment ('{character}')")
        self.character = character


class UnsupportedModelOrderError(SubstitutionDistributionError):
    """Context-dependent substitution models cannot be handled by the tree
    recursion."""

    def __init__(self, order: int) -> None:
        super().__init__(
            f'substitution model of order {order} is not supported (order must be 0)'
        )
        self.order = order


class JumpCapExceededError(SubstitutionDistributionError):
    """The support of the Poisson distribution over jumps on a branch is not
    covered by the precomputed jump tables."""

    def __init__(self, support: int, jmax: int) -> None:
        super().__init__(
            f'Poisson support ({support}) exceeds the maximum number of jumps ({jmax})'
        )
        self.support = support
        self.jmax = jmax


def get_class(full_name: str) -> Any:
    """Return a registered class or import it from its fully qualified name."""
    try:
        return REGISTERED_CLASSES[full_name]
    except KeyError:
        pass
    module_name, _, class_name = full_name.rpartition('.')
    if not module_name:
        raise ValueError(f'class `{full_name}\' is not registered')
    return getattr(importlib.import_module(module_name), class_name)


def _lookup(reference: str, dic: dict) -> Any:
    if reference not in dic:
        raise JSONParseError(f'Object with ID `{reference}\' not found')
    return dic[reference]


def _create(data: dict, dic: dict) -> Any:
    id_ = data['id']
    if id_ in dic:
        raise JSONParseError(f'Object with ID `{id_}\' already exists')
    if 'type' not in data:
        raise JSONParseError(f'Object with ID `{id_}\' does not have a type')
    try:
        klass = get_class(data['type'])
    except (ModuleNotFoundError, AttributeError, ValueError) as e:
        raise JSONParseError(f"{e} in object with ID '{id_}'") from None
    dic[id_] = klass.from_json_safe(data, dic)
    return dic[id_]


def process_object(data, dic):
    """Build an object from its JSON representation or return the object
    previously built with the given ID.

    :param data: ID (str) or JSON object (dict) with ``id`` and ``type`` keys
    :param dict dic: objects already built, keyed by ID
    """
    if isinstance(data, str):
        return _lookup(data, dic)
    if isinstance(data, dict):
        return _create(data, dic)
    raise JSONParseError(
        f'Object is not valid (should be str or object)\nProvided: {data}'
    )


def process_objects(data, dic):
    if isinstance(data, list):
        return [process_object(element, dic) for element in data]
    return process_object(data, dic)


def remove_comments(obj) -> None:
    """Delete in place the keys starting with an underscore."""
    if isinstance(obj, dict):
        for key in [key for key in obj if key.startswith('_')]:
            del obj[key]
        children = obj.values()
    elif isinstance(obj, list):
        children = obj
    else:
        return
    for child in children:
        remove_comments(child)


def package_contents(package_name: str) -> set[str]:
    """Names of the public modules and subpackages of a package."""
    package = importlib.import_module(package_name)
    return {
        name
        for _, name, _ in pkgutil.walk_packages(package.__path__, package_name + '.')
        if not name.rpartition('.')[2].startswith('_')
    }


def register_class(_cls, name=None):
    """Make a class available in JSON configurations under its name."""
    REGISTERED_CLASSES[_cls.__name__ if name is None else name] = _cls
    logging.debug('registered class %s', _cls.__qualname__)
    return _cls
