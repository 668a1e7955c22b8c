"""davcal: CalDAV calendar tools with an ETag-guarded event mutation protocol."""

__version__ = "0.1.0"
