"""
Venue Kernel - session billing foundation

Shared infrastructure for the venue back office billing engine:
- Typed errors with machine-readable codes
- Structured JSON logging
- Injectable clock and naming strategy
- SQLAlchemy persistence and a generic record store
"""

__version__ = "0.1.0"
