"""
Core Module Package.

Infrastructure shared by the storage layer and the ledger engine.

Components:
- clock: Unified UTC time abstraction
"""

from .clock import ClockFactory, ClockProtocol, MockClock, SystemClock, now_utc, today_utc

__all__ = [
    "ClockFactory",
    "ClockProtocol",
    "MockClock",
    "SystemClock",
    "now_utc",
    "today_utc",
]
