"""Palooza conversation server.

Bridges a websocket client to two realtime dialog backends, one per persona,
and cross-feeds their synthesized audio so the personas hold a spoken
conversation with each other.
"""

__version__ = "0.3.0"
