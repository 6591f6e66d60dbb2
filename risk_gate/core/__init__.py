"""Shared state, data model and the circuit breaker."""
