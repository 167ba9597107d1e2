"""Paygate shared library."""
