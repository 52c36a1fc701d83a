import pytest

from queue_mailer import MemoryTransport, default_config

from tests.mailers import FakeQueue, compositions


@pytest.fixture
def fake_queue():
    return FakeQueue()


@pytest.fixture
def transport():
    return MemoryTransport()


@pytest.fixture(autouse=True)
def mailer_config(fake_queue, transport):
    compositions.clear()
    with default_config.override(
        queue_target=fake_queue,
        queue_name="mailer",
        transport=transport,
        environment="production",
        excluded_environments=["test"],
        perform_deliveries=True,
        default_from=None,
        metrics=None,
    ):
        yield default_config
