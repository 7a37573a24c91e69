"""Condition-wait subsystem: status snapshots, expressions, and the poll loop."""
