"""Minimal ACP agent for development and testing.

Speaks newline-delimited JSON-RPC 2.0 on stdin/stdout and implements just
enough of ACP to receive a notification:

- initialize: returns protocolVersion and agentCapabilities
- session/new: returns a fresh sessionId
- session/prompt: emits a session/update notification, then answers
  ``{"stopReason": "end_turn"}``
- session/cancel: recorded, no response (notification)

Usage:
    python -m worknotify.acp.test_agent [--hang METHOD] [--error METHOD]
        [--exit-on METHOD] [--noise] [--ask-permission] [--record PATH]
"""
