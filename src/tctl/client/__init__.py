from importlib.metadata import version

__version__ = version("tctl")

# structlog is configured by the CLI (configure_client_logging) rather than at
# import time, so applications embedding the client keep control of it.
