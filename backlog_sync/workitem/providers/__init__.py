"""Tracking-service gateway implementations."""
