"""Core shared logic for forecasting, alert rules, indicators, and models.

This package contains pure business logic with no I/O dependencies
(no Redis, HTTP, or timers). The live monitor (chainwatch/) feeds it
market samples and persists what it returns.
"""
