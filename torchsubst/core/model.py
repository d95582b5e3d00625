import abc
from typing import Optional

from .serializable import JSONSerializable


class Identifiable(JSONSerializable, abc.ABC):
    """Object carrying an identifier that can be referenced in a JSON file.

    :param str or None id_: identifier of object
    """

    def __init__(self, id_: Optional[str]) -> None:
        self._id = id_

    @property
    def id(self) -> Optional[str]:
        return self._id


class Runnable(abc.ABC):
    """Object executed by the runner once the configuration is parsed."""

    @abc.abstractmethod
    def run(self) -> None:
        pass


class ModelListener(abc.ABC):
    @abc.abstractmethod
    def handle_model_changed(self, model, obj, index) -> None:
        ...


class ParameterListener(abc.ABC):
    @abc.abstractmethod
    def handle_parameter_changed(self, variable, index, event) -> None:
        ...


class Model(Identifiable, ModelListener, ParameterListener):
    """Base class of the objects whose derived quantities depend on
    parameters or other models.

    A model notifies its listeners when one of its parameters changes so
    that cached quantities (e.g. jump tables) can be recomputed lazily.
    """

    _tag = None

    def __init__(self, id_: Optional[str]) -> None:
        Identifiable.__init__(self, id_)
        self.listeners = []

    def add_model_listener(self, listener: ModelListener) -> None:
        self.listeners.append(listener)

    def remove_model_listener(self, listener: ModelListener) -> None:
        self.listeners.remove(listener)

    def fire_model_changed(self, obj=None, index=None) -> None:
        for listener in self.listeners:
            listener.handle_model_changed(self, obj, index)

    def handle_model_changed(self, model, obj, index) -> None:
        self.fire_model_changed(obj, index)

    def handle_parameter_changed(self, variable, index, event) -> None:
        self.fire_model_changed()

    @classmethod
    def tag(cls) -> Optional[str]:
        return cls._tag
