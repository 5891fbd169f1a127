"""Toolbridge command line interface."""
