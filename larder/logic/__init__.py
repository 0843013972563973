"""Core business logic layer.

Subpackages:
- inventory: batch bookkeeping operations and lookups
- reporting: freshness overview
"""
__all__ = ["inventory", "reporting"]
