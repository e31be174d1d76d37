"""Routing - compiled route table with O(path-depth) matching.

Routers are immutable once built; the app swaps in a rebuilt router when
modules wire new routes at activation time.
"""
