"""
Token Scout Trading Engine

Discovers newly launched tokens, scores them with heuristic filters and
paper-trades an automated strategy against live or simulated market data.
"""

__version__ = "0.1.0"
