"""Daemon runtime package."""
