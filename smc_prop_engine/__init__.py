"""
SMC Prop Engine - Smart Money Concepts setup scanning for crypto markets.

This package provides:
- Backtest: Replay the S1/S2/S3 scanners over historical candles
- Analyze: Metrics, per-strategy breakdowns and Monte Carlo robustness
- Live Scan: Poll Binance for several symbols and alert on new setups
"""

__version__ = "1.0.0"
