"""Unit tests configuration file."""

import pytest


def pytest_configure(config):
    """Disable verbose output when running tests."""
    terminal = config.pluginmanager.getplugin("terminal")
    if terminal:
        terminal.TerminalReporter.showfspath = False


class PlainTag:
    def __init__(self, name, value):
        self.name = name
        self.value = value

    def append(self, v):
        v.write(f"{self.name}={self.value}")


class PlainField:
    def __init__(self, name, value):
        self.name = name
        self.value = value

    def append(self, v):
        v.write(f"{self.name}={self.value}")


class PlainTimestamp:
    def __init__(self, value):
        self.value = value

    def append(self, v):
        v.write(f"<{self.value}>")


@pytest.fixture
def plain_primitives():
    """Encoders that write values verbatim, to check sequencing and separators only."""
    return {"Tag": PlainTag, "Field": PlainField, "Timestamp": PlainTimestamp}
