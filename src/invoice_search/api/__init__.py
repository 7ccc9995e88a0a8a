"""Caller-facing service layer."""
