"""GraphGate: graph-backed RBAC access decisions for FastAPI services"""

__version__ = "1.0.0"
