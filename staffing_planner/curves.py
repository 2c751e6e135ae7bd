from __future__ import annotations

import math
from typing import Iterable, List, Sequence


def normalize_weights(values: Iterable[float]) -> List[float]:
    weights = [float(value) for value in values]
    if not weights:
        raise ValueError("effort curve must contain at least one weight")
    if any(weight < 0 for weight in weights):
        raise ValueError("effort curve weights must be non-negative")
    total = sum(weights)
    if total <= 0:
        raise ValueError("effort curve weights must sum to a positive number")
    return [weight / total for weight in weights]


def flat_curve(weeks: int) -> List[float]:
    if weeks <= 0:
        raise ValueError("week count must be positive")
    return [1.0 / weeks] * weeks


def _cumulative_share(weights: Sequence[float], position: float) -> float:
    # Piecewise-linear CDF of the curve over [0, 1].
    if position <= 0:
        return 0.0
    if position >= 1:
        return 1.0
    scaled = position * len(weights)
    whole = int(math.floor(scaled))
    return sum(weights[:whole]) + weights[whole] * (scaled - whole)


def stretch_curve(shape: Sequence[float], weeks: int) -> List[float]:
    """Resample a curve shape of arbitrary length onto ``weeks`` buckets."""
    if weeks <= 0:
        raise ValueError("week count must be positive")
    weights = normalize_weights(shape)
    if weeks == len(weights):
        return weights
    shares = [
        _cumulative_share(weights, (idx + 1) / weeks) - _cumulative_share(weights, idx / weeks)
        for idx in range(weeks)
    ]
    return normalize_weights(shares)


def resolve_effort_curve(curve: object, weeks: int) -> List[float]:
    if isinstance(curve, str):
        if curve.lower() in {"uniform", "flat"}:
            return flat_curve(weeks)
        raise ValueError(f"unsupported effort curve keyword '{curve}'")
    if isinstance(curve, Sequence):
        return stretch_curve(list(curve), weeks)
    raise TypeError("effort curve must be a sequence of weights or 'uniform'")


def spread_hours(total_hours: float, weeks: int, curve: object = "uniform") -> List[float]:
    """Split ``total_hours`` into whole hours per week following the curve."""
    if weeks <= 0 or total_hours <= 0:
        return []
    # Rounding first keeps float noise such as 3.0000000000000004 from bumping a week up an hour.
    return [
        float(math.ceil(round(total_hours * share, 6)))
        for share in resolve_effort_curve(curve, weeks)
    ]
