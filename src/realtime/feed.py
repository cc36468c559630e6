import asyncio
import json
import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from src.storage.base import ChangeCallback, ChangeListeners, Unsubscribe

_log = logging.getLogger(__name__)


class ProfileChangeFeed:
    """
    Realtime change feed for the remote profile table.

    Writers publish a small event per insert/update on a Redis channel; every
    process listening on the channel calls its subscribers. Without Redis the
    feed still delivers to subscribers in the publishing process, and the same
    happens while the listener is reconnecting.
    """

    def __init__(self, redis_url: str, channel: str):
        self.redis_url = redis_url
        self.channel = channel
        self._listeners = ChangeListeners()
        self._redis: Optional[aioredis.Redis] = None
        self._listen_task: Optional[asyncio.Task] = None
        self._listener_live = False
        self.reconnect_delay = 1.0
        self.max_reconnect_delay = 30.0

    @property
    def connected(self) -> bool:
        return self._redis is not None

    async def connect(self) -> bool:
        """Connects to Redis. Returns False (and stays process-local) when Redis is unreachable."""
        _log.info(f"Attempting to create Redis connection to: {self.redis_url}")
        client = None
        try:
            client = aioredis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=1,   # 1-second TCP connect cap
            )
            await asyncio.wait_for(client.ping(), timeout=2.0)
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            _log.warning(f"Failed to connect to Redis at {self.redis_url} – realtime feed limited to this process ({exc})")
            if client is not None:
                await client.aclose()
            self._redis = None
            return False
        self._redis = client
        _log.info(f"Realtime feed connected on channel '{self.channel}'")
        return True

    async def publish(self, event: str, profile_id: str) -> None:
        """Announces a change. Never raises; a failed publish falls back to local delivery."""
        payload = json.dumps({"event": event, "id": profile_id})
        if self._redis is not None:
            try:
                await asyncio.wait_for(self._redis.publish(self.channel, payload), timeout=2.0)
                _log.debug(f"Published {payload} on {self.channel}")
                if self._listener_live or not self._listeners:
                    return
                _log.warning("Realtime listener is not connected. Notifying local subscribers directly.")
            except (RedisError, asyncio.TimeoutError) as e:
                _log.warning(f"Publishing change event to Redis failed: {e}. Notifying local subscribers only.")
        self._listeners.fire()

    def subscribe(self, callback: ChangeCallback) -> Unsubscribe:
        remove = self._listeners.add(callback)
        if self._redis is not None and self._listen_task is None:
            self._listen_task = asyncio.create_task(self._listen())

        def unsubscribe() -> None:
            remove()
            if not self._listeners and self._listen_task is not None:
                self._listen_task.cancel()
                self._listen_task = None

        return unsubscribe

    async def _listen(self) -> None:
        """
        Calls subscribers for every message on the channel.

        A lost pubsub connection is retried with exponential backoff for as long
        as the task runs. While it is down, `publish` also notifies local
        subscribers, and a successful reconnect fires once to cover changes
        that may have been missed.
        """
        delay = self.reconnect_delay
        reconnecting = False
        while True:
            client = self._redis
            if client is None:
                return
            pubsub = client.pubsub()
            try:
                await pubsub.subscribe(self.channel)
                self._listener_live = True
                _log.info(f"Listening for profile changes on {self.channel}")
                if reconnecting:
                    self._listeners.fire()
                while True:
                    message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                    delay = self.reconnect_delay
                    if message is None:
                        continue
                    _log.debug(f"Profile change received: {message.get('data')}")
                    self._listeners.fire()
            except asyncio.CancelledError:
                raise
            except (RedisError, OSError) as e:
                _log.error(f"Realtime feed listener lost its connection: {e}. Retrying in {delay:.1f}s")
            finally:
                self._listener_live = False
                try:
                    await pubsub.aclose()
                except (RedisError, OSError) as e:
                    _log.warning(f"Error closing Redis pubsub: {e}")
            reconnecting = True
            await asyncio.sleep(delay)
            delay = min(delay * 2, self.max_reconnect_delay)

    async def close(self) -> None:
        """Stops listening and closes the Redis client."""
        self._listeners.clear()
        task, self._listen_task = self._listen_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                _log.debug("Cancelled realtime listener task")
        client, self._redis = self._redis, None
        if client is not None:
            try:
                await client.aclose()
                _log.info("Redis connection closed.")
            except RedisError as e:
                _log.warning(f"Error closing Redis connection: {e}")
