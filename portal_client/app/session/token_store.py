"""
Durable credential storage.

The credential is kept under two keys (token string and serialized user
record) that are always written and cleared together. A store that finds
only one of the two reports no credential at all.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

import redis
from pydantic import ValidationError as PydanticValidationError

from shared.errors import TokenStoreError
from shared.logging import get_logger
from .models import Credential, UserRecord


class TokenStore:
    """Synchronous get/set/clear contract shared by all backends."""

    def __init__(self, token_key: str = "token", user_key: str = "user"):
        self.token_key = token_key
        self.user_key = user_key
        self.logger = get_logger(f"portal_client.token_store.{type(self).__name__}")

    def get(self) -> Optional[Credential]:
        token, user_json = self._read_pair()
        if not token and not user_json:
            return None
        if not token or not user_json:
            self.logger.warning("Ignoring partially persisted credential",
                                has_token=bool(token), has_user=bool(user_json))
            return None
        try:
            user = UserRecord.model_validate_json(user_json)
        except PydanticValidationError as e:
            self.logger.warning("Ignoring unreadable persisted user record", error=str(e))
            return None
        return Credential.from_token(token, user)

    def set(self, credential: Credential) -> None:
        self._write_pair(credential.access_token, credential.user.model_dump_json())

    def clear(self) -> None:
        self._delete_pair()

    def _read_pair(self):
        raise NotImplementedError

    def _write_pair(self, token: str, user_json: str) -> None:
        raise NotImplementedError

    def _delete_pair(self) -> None:
        raise NotImplementedError


class MemoryTokenStore(TokenStore):
    """Process-local store, used in tests and short-lived scripts."""

    def __init__(self, token_key: str = "token", user_key: str = "user"):
        super().__init__(token_key, user_key)
        self._data: Dict[str, str] = {}

    def _read_pair(self):
        return self._data.get(self.token_key), self._data.get(self.user_key)

    def _write_pair(self, token: str, user_json: str) -> None:
        self._data = {**self._data, self.token_key: token, self.user_key: user_json}

    def _delete_pair(self) -> None:
        self._data.pop(self.token_key, None)
        self._data.pop(self.user_key, None)


class FileTokenStore(TokenStore):
    """JSON file store; writes go through a temp file and an atomic rename."""

    def __init__(self, path: str, token_key: str = "token", user_key: str = "user"):
        super().__init__(token_key, user_key)
        self.path = Path(path).expanduser()

    def _load(self) -> Dict[str, Any]:
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            raise TokenStoreError("Failed to read credential file",
                                  details={"path": str(self.path), "error": str(e)}) from e
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=".credentials-")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(data, handle)
                os.chmod(tmp_path, 0o600)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise TokenStoreError("Failed to write credential file",
                                  details={"path": str(self.path), "error": str(e)}) from e

    def _read_pair(self):
        data = self._load()
        return data.get(self.token_key), data.get(self.user_key)

    def _write_pair(self, token: str, user_json: str) -> None:
        data = self._load()
        data[self.token_key] = token
        data[self.user_key] = user_json
        self._save(data)

    def _delete_pair(self) -> None:
        data = self._load()
        if self.token_key not in data and self.user_key not in data:
            return
        data.pop(self.token_key, None)
        data.pop(self.user_key, None)
        self._save(data)


class RedisTokenStore(TokenStore):
    """Redis-backed store; both keys change inside one MULTI/EXEC transaction."""

    def __init__(self, redis_url: str, token_key: str = "token", user_key: str = "user",
                 client: Optional[redis.Redis] = None):
        super().__init__(token_key, user_key)
        self.redis_url = redis_url
        self.client = client or redis.Redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5
        )

    def _read_pair(self):
        try:
            token, user_json = self.client.mget([self.token_key, self.user_key])
        except redis.RedisError as e:
            raise TokenStoreError("Failed to read credential from Redis", details={"error": str(e)}) from e
        return token, user_json

    def _write_pair(self, token: str, user_json: str) -> None:
        try:
            with self.client.pipeline(transaction=True) as pipe:
                pipe.set(self.token_key, token)
                pipe.set(self.user_key, user_json)
                pipe.execute()
        except redis.RedisError as e:
            raise TokenStoreError("Failed to write credential to Redis", details={"error": str(e)}) from e

    def _delete_pair(self) -> None:
        try:
            self.client.delete(self.token_key, self.user_key)
        except redis.RedisError as e:
            raise TokenStoreError("Failed to clear credential in Redis", details={"error": str(e)}) from e


def create_token_store(backend: str, *, path: Optional[str] = None, redis_url: Optional[str] = None,
                       token_key: str = "token", user_key: str = "user") -> TokenStore:
    """Build the configured token store backend."""
    if backend == "memory":
        return MemoryTokenStore(token_key, user_key)
    if backend == "file":
        if not path:
            raise TokenStoreError("File token store requires a path")
        return FileTokenStore(path, token_key, user_key)
    if backend == "redis":
        if not redis_url:
            raise TokenStoreError("Redis token store requires a URL")
        return RedisTokenStore(redis_url, token_key, user_key)
    raise TokenStoreError(f"Unknown token store backend: {backend}", details={"backend": backend})
