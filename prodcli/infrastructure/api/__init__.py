"""Upstream REST API access (JSON:API over httpx)."""
