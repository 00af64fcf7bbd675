"""Runtime support for influx measurements."""
