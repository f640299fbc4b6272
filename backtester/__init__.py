"""
journal-backtester

Technical indicators, a rule-based bar-by-bar backtesting engine and a grid
optimizer for trading-journal strategies.
"""

__version__ = "1.0.0"
