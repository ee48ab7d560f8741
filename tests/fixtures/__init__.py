"""
Test Fixtures

Shared test data and fakes.
"""

from .factories import (
    BASE_TIME,
    ClipRecordFactory,
    FakeDeliveryAdapter,
    read_playlist,
    touch_media,
    write_playlist,
)

__all__ = [
    "BASE_TIME",
    "ClipRecordFactory",
    "FakeDeliveryAdapter",
    "read_playlist",
    "touch_media",
    "write_playlist",
]
