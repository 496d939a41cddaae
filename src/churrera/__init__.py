"""Workflow engine for remote coding agents."""

__version__ = "0.1.0"
