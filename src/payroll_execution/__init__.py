"""Payroll run approval and exception workflow."""

__version__ = "0.1.0"
