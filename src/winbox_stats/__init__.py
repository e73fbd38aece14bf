"""
winbox-stats - per-host, per-month metric stores with JSON export and charts.

Capture mode appends one CPU/RAM/drive snapshot to monthly SQLite stores;
graph mode exports every store to JSON and renders a PNG chart beside it.
"""

__version__ = "0.1.0"
