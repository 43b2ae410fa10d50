"""
Redis infrastructure for Questline.

Exports
-------
RedisService - singleton async client with distributed locking and a
health check. Only used when the lock backend is ``redis``.
"""

from questline.core.redis.service import RedisService

__all__ = ["RedisService"]
