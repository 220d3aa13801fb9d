"""Adapters: storage and registry implementations for asset-user-history.

Contains:
- repositories.py  : SQLAlchemy Interval Store on the host database
- type_registry.py : TypeRegistry of monitored types and their tables
- retry.py         : tenacity retry policy for transient store failures
"""

__all__: list[str] = []
