"""Audit persistence — append-only event log."""
