"""
RestMock

Configurable mock HTTP server for exercising client resilience in tests.

This package provides:
- Generated CRUD resources backed by in-memory stores
- Static and echo endpoints with response templating
- Chaos engineering (latency, failures, retry simulation)
- Record/replay of request and response pairs
- Hot reload of the configuration file
"""

__version__ = '1.0.0'
