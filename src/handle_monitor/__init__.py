"""
Top-level package for the handle_monitor project.

Runtime components live in subpackages (currently `handle_monitor.pz_monitor`).
"""

__all__: list[str] = []
