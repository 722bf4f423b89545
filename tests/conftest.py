"""Shared fixtures; the in-memory port fakes live in fakes.py next to this file."""

import pytest

from fakes import FakeBuilder, FakeRemote, FakeTransfer, RecordingEventBus


@pytest.fixture
def builder(tmp_path):
    return FakeBuilder(tmp_path)


@pytest.fixture
def transfer():
    return FakeTransfer()


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def event_bus():
    return RecordingEventBus()
