"""Single-pass reference filters."""

from tessera.filters.smoothing import GaussianImageFilter
from tessera.filters.unary import CastImageFilter, UnaryFunctorImageFilter

__all__ = ['UnaryFunctorImageFilter', 'CastImageFilter', 'GaussianImageFilter']
