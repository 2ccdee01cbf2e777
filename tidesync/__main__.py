"""Allow running tidesync as ``python -m tidesync``."""

from tidesync.main import app

app(prog_name="tidesync")
