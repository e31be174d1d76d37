"""Test utilities for perch hosts.

    from perch.testing import TestClient
"""

from perch.testing.client import TestClient, WebSocketClosed, WebSocketSession

__all__ = ["TestClient", "WebSocketClosed", "WebSocketSession"]
