"""
Later Sync - HTTP API
=====================
"""
