"""
QuarterEdge Backtester
----------------------
An event-driven backtesting engine for intraday futures strategies.
Replays OHLCV candles session by session through streaming indicators and a
strategy, simulates the order lifecycle and scores the resulting trades.
"""
