"""
Profile builder.

Collects content about notable people from many sources, verifies
identity, deduplicates, and reconciles career history into a
normalized organization/role graph.
"""

__version__ = "0.1.0"
