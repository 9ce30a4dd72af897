"""Domain Layer: resource models, resolve types, errors and interfaces (ports).

Nothing in here performs I/O; infrastructure adapters implement the interfaces.
"""
