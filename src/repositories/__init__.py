"""Persistence ports — one Protocol per repository plus its SQLAlchemy implementation.

Tenant-owned methods take a ``TenantScope`` as their first argument and
filter on its tenant id in addition to the row-level security policy.
Cross-tenant variants take a ``PlatformScope``.
"""
