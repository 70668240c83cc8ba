"""
lock-userinfo source package

Read-only lock reason and user statistics queries over the segment store.
Modules are imported flat (src/ on sys.path), see api_server.py.
"""

__version__ = "1.0.0"
