"""API Resilience Implementations.

Contains the sliding-window rate limiter and the retry service that backs off
on server-side throttling (HTTP 429).
Bounded Context: API Resilience
"""
