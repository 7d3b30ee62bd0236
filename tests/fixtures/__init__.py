"""Test doubles for Mimic unit tests."""

from .fakes import (
    FakeClock,
    FakeMarketData,
    FakeOrderGateway,
    FlakyStatusStore,
    make_book,
    make_trade,
)

__all__ = [
    "FakeClock",
    "FakeMarketData",
    "FakeOrderGateway",
    "FlakyStatusStore",
    "make_book",
    "make_trade",
]
