"""Test helper utilities for CivicAid notification service tests."""

from .fakes import FakeChannelClient, make_clients
from .records import insert_ticket, make_entry

__all__ = ["FakeChannelClient", "make_clients", "insert_ticket", "make_entry"]
