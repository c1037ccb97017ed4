"""Fundamental odds mathematics — the single source of truth.

Every function here is **pure**: no I/O, no logging, no side effects.
Import from this module; never reimplement locally in services or models.

All odds are **decimal** (European) odds: the total payout per unit staked,
including the returned stake.  The feed supplies decimal prices directly,
so there is no American-odds conversion layer.

Invalid inputs (non-positive odds or probabilities) never raise; each
function returns ``0.0`` so that upstream callers can treat the result as
"no value" and move on.

Run tests with::

    pytest tests/test_markets.py -v
"""

from __future__ import annotations

from typing import Final

#: Bookmaker margin applied when synthesising a price from a model
#: probability (fair odds × 1.05).
DEFAULT_SYNTHETIC_MARGIN: Final[float] = 0.05


def implied_prob(decimal_odds: float) -> float:
    """Bookmaker-implied probability ``1 / odds`` (vig included).

    Returns 0.0 for non-positive odds.
    """
    if decimal_odds <= 0:
        return 0.0
    return 1.0 / decimal_odds


def fair_odds(probability: float) -> float:
    """Zero-margin decimal odds for ``probability``; 0.0 if ``probability <= 0``."""
    if probability <= 0:
        return 0.0
    return 1.0 / probability


def edge(probability: float, decimal_odds: float) -> float:
    """Model probability minus the bookmaker-implied probability."""
    return probability - implied_prob(decimal_odds)


def expected_value(probability: float, decimal_odds: float) -> float:
    """Expected return per unit staked: ``p × odds − 1``.

    Examples::

        expected_value(0.55, 2.00)  →  0.10
        expected_value(0.40, 2.00)  → -0.20
    """
    if decimal_odds <= 0:
        return 0.0
    return probability * decimal_odds - 1.0


def synthetic_odds(probability: float, margin: float = DEFAULT_SYNTHETIC_MARGIN) -> float:
    """Price ``probability`` as a bookmaker would, with ``margin`` added.

    Used as a fallback when no real price exists for a market.  The result
    is rounded to two decimals like a quoted price::

        synthetic_odds(0.50)  →  2.10
    """
    if probability <= 0:
        return 0.0
    return round((1.0 / probability) * (100.0 * (1.0 + margin))) / 100.0
