"""Agentic orchestration core for a personal life-management assistant."""

__version__ = "0.1.0"
