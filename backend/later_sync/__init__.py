"""
Later Sync
==========

Offline-first content synchronization engine for spaces, todo lists,
reference lists and notes.
"""

__version__ = "0.1.0"
