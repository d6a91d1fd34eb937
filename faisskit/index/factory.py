"""
Index Factory: Description String -> Configured Index

A description is a comma-separated pipeline read left to right:

    [preprocessing,] [coarse quantizer,] base index [,refinement]

e.g. "Flat", "IVF256,Flat", "PCA32,IVF64,PQ8", "IDMap,HNSW32", "IVF64,PQ8,RFlat".

The token vocabulary belongs to the engine. This module only:
    1. checks the text encoding before it crosses the engine boundary
    2. splits the pipeline and runs the checks that need no vocabulary
       (empty components, PCA output wider than d)
    3. asks the engine to build the index
    4. rejects results whose d or metric differ from what was requested

Any failure is returned whole; no partially configured index escapes.
"""

from __future__ import annotations

import logging
import numbers
import re
from dataclasses import dataclass
from typing import Union

import faiss

from faisskit.core.errors import (
    Err,
    FaissError,
    InvalidDescription,
    InvalidEncoding,
    Ok,
    Result,
    native_call,
    require,
)
from faisskit.core.types import MetricType
from faisskit.index.impl import IndexImpl

logger = logging.getLogger(__name__)

SEPARATOR = ","

# PCA, PCAW (whitening), PCAR (random rotation after), PCAWR; followed by d_out.
_PCA_TOKEN = re.compile(r"^PCAW?R?(\d+)$")


@dataclass(frozen=True, slots=True)
class DescriptionTokens:
    """A split description plus the original text."""
    text: str
    tokens: tuple[str, ...]

    @property
    def preprocessing(self) -> tuple[str, ...]:
        """Leading PCA-family stages."""
        stages = []
        for token in self.tokens:
            if not _PCA_TOKEN.match(token):
                break
            stages.append(token)
        return tuple(stages)

    def __str__(self) -> str:
        return self.text


def decode_description(description: Union[str, bytes, bytearray]) -> Result[str, FaissError]:
    """Ensure the description is text the engine can receive as UTF-8."""
    if isinstance(description, (bytes, bytearray)):
        try:
            return Ok(bytes(description).decode("utf-8"))
        except UnicodeDecodeError as exc:
            return Err(InvalidEncoding.from_exception(exc))
    try:
        description.encode("utf-8")
    except UnicodeEncodeError as exc:
        return Err(InvalidEncoding.from_exception(exc))
    return Ok(description)


def parse_description(text: str, d: int) -> Result[DescriptionTokens, FaissError]:
    """
    Split a description and run the vocabulary-free checks against d.

    Returns:
        DescriptionTokens, or InvalidDescription naming the offending text
    """
    if not text.strip():
        return Err(InvalidDescription.new(text, "empty description"))

    tokens = tuple(text.split(SEPARATOR))
    for position, token in enumerate(tokens):
        if not token.strip():
            return Err(InvalidDescription.new(text, f"empty component at position {position}"))
        match = _PCA_TOKEN.match(token)
        if match:
            d_out = int(match.group(1))
            if d_out == 0:
                return Err(InvalidDescription.new(text, f"{token} reduces to zero dimensions"))
            if d_out > d:
                return Err(InvalidDescription.new(
                    text, f"{token} output width {d_out} exceeds input dimensionality {d}"
                ))
    return Ok(DescriptionTokens(text=text, tokens=tokens))


def index_factory(
    d: int,
    description: Union[str, bytes, bytearray],
    metric: MetricType = MetricType.L2,
) -> Result[IndexImpl, FaissError]:
    """
    Build a host index from a description.

    Args:
        d: Vector dimensionality, must be positive
        description: Topology description, e.g. "IVF64,PQ8"
        metric: Scoring metric

    Returns:
        IndexImpl, InvalidDescription or InvalidEncoding
    """
    decoded = decode_description(description)
    if decoded.is_err():
        return decoded
    text = decoded.unwrap()

    if isinstance(d, bool) or not isinstance(d, numbers.Integral) or d <= 0:
        return Err(InvalidDescription.new(text, f"dimensionality must be a positive integer, got {d!r}"))
    d = int(d)

    parsed = parse_description(text, d)
    if parsed.is_err():
        return parsed

    built = native_call(faiss.index_factory, d, text, metric.code, operation="index_factory")
    if built.is_err():
        logger.debug("engine rejected description %r: %s", text, built.error.message)
        return Err(InvalidDescription.rejected(text, built.error.engine_message))

    native = require(built.unwrap(), "index")
    if native.is_err():
        return native
    index = IndexImpl(native.unwrap())

    built_d = index.d
    if built_d != d:
        index.release()
        return Err(InvalidDescription.new(
            text, f"engine built an index of dimensionality {built_d}, requested {d}"
        ))
    if int(index._native().metric_type) != metric.code:
        index.release()
        return Err(InvalidDescription.new(text, f"not compatible with metric {metric.name}"))

    logger.debug("built %s index from %r (d=%d, metric=%s)", index.kind.value, text, d, metric.name)
    return Ok(index)
