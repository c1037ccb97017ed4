"""Core mathematics and configuration for the Edge Engine.

This package contains pure building blocks:

- ``engine_config`` — thresholds, weights, per-league and per-market constants
- ``odds_math``     — implied probability, fair odds, edge and EV
- ``poisson``       — strength factors, λ model, score matrix, market derivation
- ``elo``           — Elo-like ratings, Bayesian form update, λ blending
- ``rng``           — seedable xorshift32 generator for reproducible simulation
- ``clv``           — closing-line value projection
- ``risk``          — risk gates and risk scoring
- ``edge_score``    — composite edge score, tier and stake
- ``markets``       — market whitelist, odds matching and market evaluation
- ``kelly``         — fractional Kelly sizing, exposure and drawdown checks

Nothing in this package imports from ``edge_engine.services`` or
``edge_engine.models``.  All modules are side-effect-free and unit-testable
in isolation.
"""
