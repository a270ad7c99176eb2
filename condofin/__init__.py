"""Condominium fee resolution, month allocation and debt reporting engine."""

__version__ = "0.1.0"
