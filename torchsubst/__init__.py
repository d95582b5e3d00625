"""This is the root package of the torchsubst library."""
from ._version import __version__
from .core.parameter import Parameter

__all__ = [
    '__version__',
    'Parameter',
]
