"""Closeflow: approval gating and workflow dependencies for the monthly reporting close."""

__version__ = "0.3.0"
