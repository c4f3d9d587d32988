"""
Shared fakes for the gateway tests.

No network: the provider and auth collaborators are in-memory stand-ins and
retry sleeps are recorded instead of awaited.
"""

import os
import random
import shutil
import tempfile

import pytest

from lumina_gateway.core.errors import Unauthorized
from lumina_gateway.storage.repository import GatewayRepository, initialize_schema


class FakeProvider:
    """Scripted provider; each queue entry is a value, an exception or a callable."""

    def __init__(self):
        self.generate_results = []
        self.image_results = []
        self.speech_results = []
        self.generate_calls = []
        self.image_calls = []
        self.speech_calls = []

    @staticmethod
    def _next(queue, *args):
        if not queue:
            raise AssertionError("FakeProvider called more often than scripted")
        result = queue.pop(0)
        if isinstance(result, BaseException):
            raise result
        if callable(result):
            return result(*args)
        return result

    async def generate(self, prompt, result_shape):
        self.generate_calls.append((prompt, result_shape))
        return self._next(self.generate_results, prompt, result_shape)

    async def generate_image(self, prompt, style_hint):
        self.image_calls.append((prompt, style_hint))
        return self._next(self.image_results, prompt, style_hint)

    async def generate_speech(self, text):
        self.speech_calls.append(text)
        return self._next(self.speech_results, text)


class FakeAuth:
    """Maps known bearer tokens to user ids."""

    def __init__(self, tokens=None):
        self.tokens = tokens or {"Bearer good-token": "user-1"}

    async def resolve_identity(self, credential):
        if credential not in self.tokens:
            raise Unauthorized("Unauthorized: Please log in.")
        return self.tokens[credential]


class RecordingSleep:
    """Stands in for asyncio.sleep and remembers every delay."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


class FixedRandom(random.Random):
    """Random source with a pinned roll and a pinned pick."""

    def __init__(self, roll, pick=0):
        super().__init__(0)
        self.roll = roll
        self.pick = pick

    def random(self):
        return self.roll

    def choice(self, seq):
        return seq[self.pick]


class ManualClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class StatusError(Exception):
    """Provider-style exception exposing an HTTP status."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


@pytest.fixture
def db_path():
    """Path to a fresh, initialized SQLite database."""
    temp_dir = tempfile.mkdtemp()
    path = os.path.join(temp_dir, "test.db")
    initialize_schema(path)
    yield path
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def repository(db_path):
    return GatewayRepository(db_path)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def auth():
    return FakeAuth()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()
