from __future__ import annotations

import abc
import logging
from typing import Any

from .utils import JSONParseError


class JSONSerializable(abc.ABC):
    """Object built from a JSON configuration."""

    @classmethod
    @abc.abstractmethod
    def from_json(cls, data: dict[str, Any], dic: dict[str, Any]) -> Any:
        """Create an object from its dictionary representation.

        :param dict[str, Any] data: JSON object
        :param dict[str, Any] dic: objects already built, keyed by ID
        """
        ...

    @classmethod
    def from_json_safe(cls, data: dict[str, Any], dic: dict[str, Any]) -> Any:
        """Call :meth:`from_json` and report a missing key as a
        :class:`JSONParseError`.

        :raises JSONParseError: invalid JSON object
        """
        name = cls.__name__
        id_ = data.get('id')
        try:
            return cls.from_json(data, dic)
        except KeyError as e:
            if id_ is None:
                raise JSONParseError(f"Missing `id' key for object of type `{name}'")
            raise JSONParseError(
                f"Missing key `{e.args[0]}' for object of type `{name}' with ID `{id_}'"
            ) from None
        except JSONParseError as e:
            logging.error(e)
            raise JSONParseError(
                f"Calling object of type `{name}' with ID `{id_}'"
            ) from None
