"""SignalHub: multi-tenant trading signals API."""

__version__ = "1.0.0"
