import pytest

from fakes import FakeBus, FakeTransport, Recorder, RecordingTransport


@pytest.fixture
def bus():
    return FakeBus()


@pytest.fixture
def transport(bus):
    t = FakeTransport(bus)
    t.open()
    yield t
    t.close()


@pytest.fixture
def recording_transport():
    return RecordingTransport()


@pytest.fixture
def recorder():
    return Recorder()
