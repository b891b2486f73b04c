"""Authoritative server for a real-time territory-control game on a small graph."""
