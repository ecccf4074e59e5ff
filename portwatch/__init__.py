# PortWatch - Listening port snapshots and change detection
try:
    from importlib.metadata import version as _version
    __version__ = _version("portwatch")
except Exception:
    __version__ = "0.1.0"
