"""
martingrid - martingale grid trading engine for perpetual futures.

Grid construction and level progression, weighted-average position
accounting, risk evaluation and retrying order execution, sequenced by a
single control loop.
"""

__version__ = "1.0.0"
