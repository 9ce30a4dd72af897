"""prodcli: resilience and identifier-resolution core for a Productive.io CLI."""

__version__ = "0.1.0"
