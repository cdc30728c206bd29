"""judicial-core: case, decision and audit core for a court information system."""

__version__ = "0.1.0"
