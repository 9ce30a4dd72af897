"""Domain events emitted by the API resilience layer."""
