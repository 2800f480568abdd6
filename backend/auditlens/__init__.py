"""
AuditLens - audit analytics and permission-filtered dashboards.
"""

__version__ = "1.0.0"
