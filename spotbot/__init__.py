"""
spotbot - Risk-gated Spot Trading Engine
========================================

Core Components:
- exchange/: ccxt gateway (Ok/Err results), paper exchange
- risk/: risk gate + explicit risk/budget state
- execution/: position ledger, order executor, startup reconciler
- engine.py: per-bot live engine (tick driver)
- monitoring/: stats reporter, halt/error counters
- strategy/: strategy capability + variant registry
- config/: YAML config loader
"""
