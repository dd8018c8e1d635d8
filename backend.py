import json
from typing import List, Optional

import redis

from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD, REDIS_DB
from errors import NotFoundError
from logging_config import get_logger
from redis_keys import REDIS_COLLECTION_KEY, USERS, SERVERS, GROUPS, CHANNELS, MESSAGES

logger = get_logger(__name__)

# The client connects lazily on first command
redis_client = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, db=REDIS_DB, decode_responses=True)


class RedisBackend:
    """Record store: named collections of JSON records kept in Redis.

    Each collection is one JSON array under `store:collection:{name}`, read and
    written whole. Concurrent writers to the same collection can lose updates
    (read-modify-write); callers do not rely on more than that.
    """

    def __init__(self, client: redis.Redis = None):
        self.redis_client = client if client is not None else redis_client
        logger.info("Initializing RedisBackend record store")

    def ping(self) -> bool:
        try:
            self.redis_client.ping()
            logger.info(f"Redis client connected successfully to {REDIS_HOST}:{REDIS_PORT}")
            return True
        except redis.RedisError as e:
            logger.error(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}: {e}", exc_info=True)
            raise

    def read_collection(self, name: str) -> List[dict]:
        key = REDIS_COLLECTION_KEY.format(name=name)
        raw = self.redis_client.get(key)
        if not raw:
            return []
        try:
            records = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.error(f"Collection {name} holds invalid JSON, treating it as empty")
            return []
        if not isinstance(records, list):
            logger.error(f"Collection {name} is not a list, treating it as empty")
            return []
        return records

    def write_collection(self, name: str, records: List[dict]) -> bool:
        key = REDIS_COLLECTION_KEY.format(name=name)
        self.redis_client.set(key, json.dumps(records))
        logger.debug(f"Wrote {len(records)} records to collection {name}")
        return True

    def find_user_by_token(self, token: str) -> Optional[dict]:
        if not token:
            return None
        for user in self.read_collection(USERS):
            if user.get("token") == token:
                return user
        return None

    def get_channel(self, channel_id: str) -> Optional[dict]:
        for channel in self.read_collection(CHANNELS):
            if channel.get("id") == channel_id:
                return channel
        return None

    def can_post(self, user_id: str, channel_id: str) -> bool:
        """Whether `user_id` may read and post in the channel.

        Server channels need server membership or ownership, group channels
        need group membership. Raises NotFoundError for an unknown channel.
        """
        channel = self.get_channel(channel_id)
        if channel is None:
            raise NotFoundError("Channel not found")

        if channel.get("serverId"):
            for server in self.read_collection(SERVERS):
                if server.get("id") == channel["serverId"]:
                    return user_id in server.get("members", []) or server.get("ownerId") == user_id
            return False

        if channel.get("groupId"):
            for group in self.read_collection(GROUPS):
                if group.get("id") == channel["groupId"]:
                    return user_id in group.get("members", [])
            return False

        logger.warning(f"Channel {channel_id} belongs to neither a server nor a group")
        return False

    def append_message(self, message: dict) -> dict:
        messages = self.read_collection(MESSAGES)
        messages.append(message)
        self.write_collection(MESSAGES, messages)
        logger.debug(f"Message {message.get('id')} stored for channel {message.get('channelId')}")
        return message

    def channel_messages(self, channel_id: str) -> List[dict]:
        """Messages of a channel in stored order, with the author's current username."""
        usernames = {u.get("id"): u.get("username") for u in self.read_collection(USERS)}
        result = []
        for message in self.read_collection(MESSAGES):
            if message.get("channelId") != channel_id:
                continue
            result.append({**message, "username": usernames.get(message.get("userId"), "Unknown user")})
        return result


redis_backend = RedisBackend()
