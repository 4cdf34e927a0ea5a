"""Pipeline sources."""

from tessera.sources.array_source import ArrayImageSource
from tessera.sources.function_source import FunctionImageSource

__all__ = ['ArrayImageSource', 'FunctionImageSource']
