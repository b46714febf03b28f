"""Presentation adapters for the gate surfaces."""

from comprehension_gate.adapters.console import ConsoleGateUI, drive_console_gate

__all__ = ["ConsoleGateUI", "drive_console_gate"]
