"""Asset-user history: who held which asset, and when.

Captures assignee changes of monitored assets as history intervals, backfills
assets that predate monitoring, and answers permission-aware history queries
for both a user and an asset.
"""

__version__ = "0.1.0"
