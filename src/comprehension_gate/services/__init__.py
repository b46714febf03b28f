"""Collaborator contracts and their transports."""

from comprehension_gate.services.http import BackendClient
from comprehension_gate.services.mock import MockBackend

__all__ = ["BackendClient", "MockBackend"]
