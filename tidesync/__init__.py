"""tidesync - jittered periodic job scheduling with retry backoff."""

__app_name__ = "tidesync"
__version__ = "0.1.0"
