import pytest

from queue_mailer import DeferredMessage, Mailer, Message, action, default_config
from queue_mailer.errors import ActionNotFound, retry_policies
from queue_mailer.queue import job_name, resolve_target

from tests.mailers import (
    CustomError,
    SiblingMailer,
    WelcomeMailer,
    WelcomeMailerWithCustomError,
    compositions,
)


def test_actions_are_collected_and_inherited():
    assert WelcomeMailer.actions == frozenset({"send_welcome", "send_digest"})
    assert SiblingMailer.actions == WelcomeMailer.actions


def test_overriding_an_action_with_a_plain_method_removes_it():
    class PlainMailer(WelcomeMailer):
        def send_digest(self, user_id, items):
            return "plain"

    assert PlainMailer.actions == frozenset({"send_welcome"})


def test_mailers_are_registered_as_job_targets():
    assert resolve_target(job_name(WelcomeMailer)) is WelcomeMailer


def test_queue_defaults_to_the_mailer_queue():
    assert WelcomeMailer.queue() == "mailer"


def test_queue_name_can_be_overridden():
    default_config.queue_name = "postal"
    assert WelcomeMailer.queue() == "postal"


def test_queue_target_can_be_overridden(fake_queue):
    assert WelcomeMailer.queue_target() is fake_queue
    other = object()
    default_config.queue_target = other
    assert WelcomeMailer.queue_target() is other


def test_action_call_returns_deferred_handle():
    handle = WelcomeMailer.send_welcome(42)
    assert isinstance(handle, DeferredMessage)
    assert handle.mailer_class is WelcomeMailer
    assert handle.action == "send_welcome"
    assert handle.args == (42,)


def test_action_call_does_not_compose():
    WelcomeMailer.send_welcome(42)
    assert compositions["send_welcome"] == 0


def test_dispatch_returns_message_in_excluded_environment():
    default_config.environment = "test"
    result = WelcomeMailer.send_welcome(42)
    assert isinstance(result, Message)
    assert compositions["send_welcome"] == 1


def test_dispatch_returns_message_when_deliveries_disabled():
    default_config.perform_deliveries = False
    assert isinstance(WelcomeMailer.send_welcome(42), Message)


def test_current_env_can_be_replaced(monkeypatch):
    default_config.excluded_environments = ["custom"]
    monkeypatch.setattr(SiblingMailer, "current_env", classmethod(lambda cls: "custom"))
    assert SiblingMailer.environment_excluded() is True
    assert WelcomeMailer.environment_excluded() is False
    assert isinstance(SiblingMailer.send_welcome(1), Message)


def test_non_action_attributes_pass_through():
    assert WelcomeMailer.greeting("Ada") == "Hello Ada"
    assert WelcomeMailer.dispatch("greeting", "Ada") == "Hello Ada"


def test_non_action_attributes_pass_through_when_excluded():
    default_config.environment = "test"
    assert WelcomeMailer.dispatch("greeting", "Ada") == "Hello Ada"


def test_unknown_names_raise_attribute_error():
    with pytest.raises(AttributeError):
        WelcomeMailer.dispatch("does_not_exist", 1)
    with pytest.raises(AttributeError):
        WelcomeMailer.does_not_exist


def test_instance_access_returns_bound_method():
    mailer = WelcomeMailer("send_welcome", 7)
    assert mailer.send_welcome.__self__ is mailer
    assert compositions["send_welcome"] == 1


def test_constructing_unknown_action_fails():
    with pytest.raises(ActionNotFound):
        WelcomeMailer("greeting", "Ada")


def test_composed_message_headers_and_defaults():
    message = WelcomeMailer("send_welcome", 42).message
    assert message.to == "user42@example.org"
    assert message.sender == "from@example.org"
    assert message.subject == "Subject"
    assert message["Message-ID"]
    assert "Welcome user 42" in message.body
    assert message.mailer_name == job_name(WelcomeMailer)


def test_composed_message_with_html_alternative():
    message = WelcomeMailer("send_digest", 1, ["a", "b"]).message
    assert message.subject == "2 new items"
    assert message.email.is_multipart()
    assert message.body.strip() == "a\nb"


def test_default_from_falls_back_to_config():
    class BareMailer(Mailer):
        @action
        def note(self, to):
            self.mail(to=to, cc=["a@example.org", "b@example.org"], headers={"X-Tag": "note"})

    default_config.default_from = "config@example.org"
    message = BareMailer("note", "c@example.org").message
    assert message.sender == "config@example.org"
    assert message["Cc"] == "a@example.org, b@example.org"
    assert message["X-Tag"] == "note"


def test_action_without_mail_call_gets_default_message():
    class SilentMailer(Mailer):
        defaults = {"from": "from@example.org", "subject": "Empty"}

        @action
        def nothing(self):
            pass

    message = SilentMailer("nothing").message
    assert message.subject == "Empty"
    assert message.to is None


def test_retry_on_keyword_declares_extension():
    assert retry_policies.extensions(WelcomeMailerWithCustomError) == (CustomError,)
    assert retry_policies.extensions(WelcomeMailer) == ()


def test_additional_errors_to_retry_replaces_extension():
    class ReplacingMailer(WelcomeMailer, retry_on=(CustomError,)):
        pass

    ReplacingMailer.additional_errors_to_retry([KeyError])
    try:
        assert retry_policies.extensions(ReplacingMailer) == (KeyError,)
    finally:
        retry_policies.clear(ReplacingMailer)
