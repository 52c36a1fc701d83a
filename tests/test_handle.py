import threading

import pytest

from queue_mailer import DeferredMessage, default_config

from tests.mailers import FailingTransport, SlowMailer, WelcomeMailer, compositions


@pytest.mark.asyncio
async def test_deliver_places_job_on_the_mailer_queue(fake_queue, transport):
    await WelcomeMailer.send_welcome(42).deliver()

    assert fake_queue.calls == [(WelcomeMailer, 1, "send_welcome", [42], "mailer")]
    assert transport.deliveries == []


@pytest.mark.asyncio
async def test_deliver_does_not_compose_the_message(fake_queue):
    handle = WelcomeMailer.send_welcome(42)
    await handle.deliver()

    assert compositions["send_welcome"] == 0
    assert handle.realized is False


@pytest.mark.asyncio
async def test_deliver_uses_queue_name_at_call_time(fake_queue):
    handle = WelcomeMailer.send_welcome(42)
    default_config.queue_name = "postal"
    await handle.deliver()

    assert fake_queue.calls[0][4] == "postal"


@pytest.mark.asyncio
async def test_deliver_in_excluded_environment_sends_inline(fake_queue, transport):
    default_config.environment = "test"
    await WelcomeMailer.send_welcome(42).deliver()

    assert fake_queue.calls == []
    assert len(transport.deliveries) == 1
    assert transport.deliveries[0]["To"] == "user42@example.org"


@pytest.mark.asyncio
async def test_deliver_when_deliveries_disabled_sends_nothing(fake_queue, transport):
    default_config.perform_deliveries = False
    await WelcomeMailer.send_welcome(42).deliver()

    assert fake_queue.calls == []
    assert transport.deliveries == []


@pytest.mark.asyncio
async def test_deliver_now_sends_synchronously(fake_queue, transport):
    await WelcomeMailer.send_welcome(42).deliver_now()

    assert fake_queue.calls == []
    assert len(transport.deliveries) == 1
    assert compositions["send_welcome"] == 1


@pytest.mark.asyncio
async def test_deliver_now_errors_are_not_retried(fake_queue):
    default_config.transport = FailingTransport(TimeoutError("timed out"))

    with pytest.raises(TimeoutError):
        await WelcomeMailer.send_welcome(42).deliver_now()
    assert fake_queue.calls == []


def test_attribute_access_composes_once():
    handle = WelcomeMailer.send_welcome(42)

    assert handle.subject == "Subject"
    assert handle.to == "user42@example.org"
    assert handle["From"] == "from@example.org"
    assert handle.realized is True
    assert compositions["send_welcome"] == 1


@pytest.mark.asyncio
async def test_deliver_now_after_inspection_reuses_message(transport):
    handle = WelcomeMailer.send_welcome(42)
    message_id = handle["Message-ID"]
    await handle.deliver_now()

    assert compositions["send_welcome"] == 1
    assert transport.deliveries[0]["Message-ID"] == message_id


def test_unknown_attribute_raises_after_composing():
    handle = WelcomeMailer.send_welcome(42)
    with pytest.raises(AttributeError):
        handle.not_a_message_attribute


def test_private_attributes_are_not_forwarded():
    handle = WelcomeMailer.send_welcome(42)
    with pytest.raises(AttributeError):
        handle._private
    assert handle.realized is False


def test_handle_uses_injected_config(fake_queue):
    handle = DeferredMessage(WelcomeMailer, "send_welcome", [1])
    assert handle.config is default_config
    assert handle.args == (1,)
    assert "send_welcome" in repr(handle)
    assert handle.realized is False


def test_concurrent_access_composes_once():
    handle = SlowMailer.send_report(7)
    results = []

    def read_subject():
        results.append(handle.subject)

    threads = [threading.Thread(target=read_subject) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results == ["Slow"] * 8
    assert compositions["send_report"] == 1
