"""`Tessera` - bounded-memory streaming of large array pipelines.

Subpackages:
- core: Regions, split policies, generation stamps, data handles
- pipeline: Node protocol, streaming controller, run driver
- filters: Single-pass reference filters
- sources: Array, NetCDF and synthetic image sources
- contracts: Fail-fast pipeline invariants and failure types
- schemas: Pydantic configuration
"""

__version__ = "0.1.0"
