"""
Repository layer for data access.

Shared lookups for users, memberships and tree cards live here; the
module-specific services build their own queries on top.
"""
