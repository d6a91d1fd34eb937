"""
Index Module: Factory, Index Handles, Selectors and Persistence

Provides:
    - index_factory: description string -> IndexImpl
    - IndexImpl: host-resident index
    - IdSelector: label selection for remove_ids()
    - serialize / deserialize / read_index / write_index

The device-resident GpuIndexImpl lives in faisskit.index.gpu and is only
imported on demand.
"""

from faisskit.index.base import NativeIndex
from faisskit.index.factory import (
    DescriptionTokens,
    decode_description,
    index_factory,
    parse_description,
)
from faisskit.index.impl import IndexImpl
from faisskit.index.io import (
    IoFlags,
    deserialize,
    read_index,
    serialize,
    write_index,
)
from faisskit.index.selector import IdSelector

__all__ = [
    # Factory
    "index_factory",
    "parse_description",
    "decode_description",
    "DescriptionTokens",
    # Index
    "NativeIndex",
    "IndexImpl",
    "IdSelector",
    # Persistence
    "IoFlags",
    "serialize",
    "deserialize",
    "read_index",
    "write_index",
]
