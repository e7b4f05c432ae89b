"""
Asyncio helpers for tasks and synchronisation primitives.

These are not related to the Kubernetes API or to the mirroring domain,
but only to the low-level patterns of orchestrating the background tasks.
"""
