"""Shared fixtures for k3sdev tests."""

import subprocess

import pytest


class FakeRunner:
    """Stands in for subprocess.run; replies by command prefix and records calls."""

    def __init__(self):
        self.calls = []
        self.responses = []

    def on(self, *prefix, returncode=0, stdout="", stderr=""):
        self.responses.append((tuple(prefix), returncode, stdout, stderr))
        return self

    def __call__(self, cmd, input=None, **kwargs):
        self.calls.append((list(cmd), input))
        for prefix, returncode, stdout, stderr in reversed(self.responses):
            if tuple(cmd[:len(prefix)]) == prefix:
                return subprocess.CompletedProcess(cmd, returncode, stdout, stderr)
        return subprocess.CompletedProcess(cmd, 0, "", "")

    @property
    def commands(self):
        return [cmd for cmd, _ in self.calls]

    def applied(self):
        """stdin payloads of every ``apply -f -`` call that carried manifests."""
        return [
            input for cmd, input in self.calls
            if "apply" in cmd and input and "kind:" in input
        ]


class FakeClock:
    """Monotonic clock advanced only by the fake sleep."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def clock():
    return FakeClock()
