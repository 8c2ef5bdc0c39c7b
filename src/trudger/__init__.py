"""Trudger: drive a task tracker and a coding agent through solve/review loops."""

__version__ = "0.1.0"
