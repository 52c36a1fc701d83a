"""Mailers and fakes shared by the test suite."""

import asyncio
import time
from collections import Counter

from queue_mailer import Mailer, action

compositions = Counter()


class CustomError(Exception):
    pass


class AnotherError(Exception):
    pass


class FakeQueue:
    def __init__(self):
        self.calls = []

    async def enqueue(self, target, attempt, action, args, *, queue):
        self.calls.append((target, attempt, action, list(args), queue))


class FailingTransport:
    def __init__(self, exc):
        self.exc = exc
        self.attempts = 0

    async def send(self, email):
        self.attempts += 1
        raise self.exc


class WelcomeMailer(Mailer):
    defaults = {"from": "from@example.org", "subject": "Subject"}

    @action
    def send_welcome(self, user_id):
        compositions["send_welcome"] += 1
        self.mail(to=f"user{user_id}@example.org", body=f"Welcome user {user_id}")

    @action
    def send_digest(self, user_id, items):
        compositions["send_digest"] += 1
        self.mail(
            to=f"user{user_id}@example.org",
            subject=f"{len(items)} new items",
            body="\n".join(items),
            html="<ul>" + "".join(f"<li>{item}</li>" for item in items) + "</ul>",
        )

    @classmethod
    def greeting(cls, name):
        return f"Hello {name}"


class WelcomeMailerWithCustomError(WelcomeMailer, retry_on=(CustomError,)):
    pass


class SiblingMailer(WelcomeMailer):
    pass


class HangingTransport:
    """Times out like an SMTP session that never answers."""

    def __init__(self, timeout=0.01):
        self.timeout = timeout

    async def send(self, email):
        await asyncio.wait_for(asyncio.sleep(1), timeout=self.timeout)


class SlowMailer(Mailer):
    defaults = {"from": "from@example.org", "subject": "Slow"}

    @action
    def send_report(self, user_id):
        compositions["send_report"] += 1
        time.sleep(0.05)
        self.mail(to=f"user{user_id}@example.org")
