"""Infrastructure Layer: Contains concrete implementations and adapters.

Connects the application to the outside world (the REST API, the cache
directories, the terminal) by implementing the interfaces defined in the
domain layer.
"""
