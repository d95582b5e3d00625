"""Parameters holding the tensors of substitution models."""
from __future__ import annotations

from typing import Any, Optional

import torch
from torch import Tensor

from .model import Identifiable, ParameterListener
from .utils import get_class, process_object, register_class


@register_class
class Parameter(Identifiable):
    """Named tensor shared between models.

    Replacing the tensor notifies the listeners registered with
    :meth:`add_parameter_listener`, so that the models using the parameter
    can invalidate the quantities derived from it.

    :param id_: identifier of the parameter
    :type id_: str or None
    :param Tensor tensor: value of the parameter
    """

    def __init__(self, id_: Optional[str], tensor: Tensor) -> None:
        super().__init__(id_)
        self._tensor = tensor
        self.listeners: list[ParameterListener] = []

    def __repr__(self):
        return f"Parameter(id_={self._id!r}, tensor={self._tensor!r})"

    @property
    def tensor(self) -> Tensor:
        return self._tensor

    @tensor.setter
    def tensor(self, tensor: Tensor) -> None:
        self._tensor = tensor
        self.fire_parameter_changed()

    @property
    def shape(self) -> torch.Size:
        return self._tensor.shape

    @property
    def dtype(self) -> torch.dtype:
        return self._tensor.dtype

    def add_parameter_listener(self, listener: ParameterListener) -> None:
        self.listeners.append(listener)

    def remove_parameter_listener(self, listener: ParameterListener) -> None:
        self.listeners.remove(listener)

    def fire_parameter_changed(self, index=None, event=None) -> None:
        for listener in self.listeners:
            listener.handle_parameter_changed(self, index, event)

    @classmethod
    def from_json(cls, data: dict[str, Any], dic: dict[str, Identifiable]) -> Parameter:
        r"""Create a parameter from its JSON representation.

        The value is given by exactly one of:

         - tensor (list or float): values of the tensor.
         - full (list): shape of a tensor filled with ``value``.
         - full_like (str or dict): parameter whose shape is used, filled
           with ``value``.

        ``dtype`` (e.g. ``torch.float32``) defaults to ``torch.float64``.

        .. code-block:: json

          {
            "id": "frequencies",
            "type": "Parameter",
            "full": [4],
            "value": 0.25
          }

        :example:
        >>> data = {"id": "kappa", "type": "Parameter", "tensor": [2.5]}
        >>> Parameter.from_json(data, {}).tensor
        tensor([2.5000], dtype=torch.float64)
        """
        dtype = get_class(data['dtype']) if 'dtype' in data else torch.float64
        if 'full_like' in data:
            like = process_object(data['full_like'], dic)
            tensor = torch.full(like.shape, data['value'], dtype=dtype)
        elif 'full' in data:
            tensor = torch.full(tuple(data['full']), data['value'], dtype=dtype)
        else:
            tensor = torch.tensor(data['tensor'], dtype=dtype)
        return cls(data['id'], tensor)
