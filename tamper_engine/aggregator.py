"""
ConfidenceAggregator: fuses ELA, copy-move and metadata cues into one
tampering score in [0, 100].

=== Unweighted factor averaging ===

Each available signal contributes one factor in [0, 1]:

  1. ELA: mean confidence of the ELA regions, only if there is at least
     one region.
  2. Copy-move: the detector's overall confidence, only if it is > 0.
  3. Metadata: always included.  Starts at 1.0, multiplied by
     ``missing_metadata_penalty`` (0.7) when no metadata is present and by
     ``1 - warning_count * warning_penalty`` when there are warnings.
     Clamped at 0.

    score = mean(factors) * 100

The metadata factor is the only unconditional one, so an image with no
ELA regions, no copy-move pairs and clean metadata scores 100.0.

A detector that failed is passed as ``None`` and contributes nothing.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Optional

from .utils import MetadataCues

MISSING_METADATA_PENALTY = 0.7
WARNING_PENALTY = 0.1

# Presentation bands on the [0, 100] score
LOW_BAND = 30.0
HIGH_BAND = 70.0


def _field(result: Any, name: str, default: Any) -> Any:
    """Read *name* from a detector result object or its ``to_dict()`` form."""
    if result is None:
        return default
    if isinstance(result, Mapping):
        if name in result:
            return result[name]
    elif hasattr(result, name):
        return getattr(result, name)
    raise TypeError(
        f"expected a detector result with a '{name}' field, got {type(result).__name__}"
    )


def _region_confidence(region: Any) -> float:
    if isinstance(region, Mapping):
        return float(region["confidence"])
    return float(region.confidence)


def confidence_level(score: float) -> str:
    """Map an aggregate score to ``"LOW"`` | ``"MOD"`` | ``"HIGH"``."""
    if score < LOW_BAND:
        return "LOW"
    if score < HIGH_BAND:
        return "MOD"
    return "HIGH"


class ConfidenceAggregator:
    """
    Combines detector outputs and metadata cues into a single score.

    Args:
        missing_metadata_penalty: multiplier applied when ``has_metadata`` is false
        warning_penalty: per-warning reduction of the metadata factor
    """

    def __init__(
        self,
        missing_metadata_penalty: float = MISSING_METADATA_PENALTY,
        warning_penalty: float = WARNING_PENALTY,
    ):
        self.missing_metadata_penalty = missing_metadata_penalty
        self.warning_penalty = warning_penalty

    def metadata_factor(self, metadata: MetadataCues) -> float:
        factor = 1.0
        if not metadata.has_metadata:
            factor *= self.missing_metadata_penalty
        if metadata.warning_count > 0:
            factor *= 1.0 - metadata.warning_count * self.warning_penalty
        return max(0.0, factor)

    def aggregate(
        self,
        ela: Optional[Any],
        copy_move: Optional[Any],
        metadata: MetadataCues,
    ) -> float:
        """Return the tampering confidence in [0, 100].

        *ela* needs a ``regions`` field and *copy_move* a ``confidence``
        field, as attributes or mapping keys (the ``to_dict()`` form).
        Either may be ``None``; anything else raises ``TypeError``.
        """
        total = 0.0
        factors = 0

        regions = _field(ela, "regions", None) or []
        if regions:
            total += sum(_region_confidence(r) for r in regions) / len(regions)
            factors += 1

        cm_confidence = _field(copy_move, "confidence", 0.0) or 0.0
        if cm_confidence > 0:
            total += cm_confidence
            factors += 1

        total += self.metadata_factor(metadata)
        factors += 1

        return (total / factors) * 100.0 if factors > 0 else 0.0
