"""Examhall: exam blueprints and robust exam sessions."""

__version__ = "0.1.0"
