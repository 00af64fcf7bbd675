"""influxgen - InfluxDB line protocol serializer generator."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("influxgen")
except PackageNotFoundError:
    __version__ = "(local)"
