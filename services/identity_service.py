"""
Local Identity Service.

Each client gets a stable, opaque user id and a random display name of the form
`<Color><Animal>`. Both are generated on first use and persisted in
client-local storage so later sessions on the same client reuse them. Display
names are not unique (8 colors x 8 animals); only the user id identifies a
user, and only loosely, since ids are never coordinated between clients.

Key Components:
- `LocalStorage`: Minimal string key/value persistence, mirroring browser
  local storage. `MemoryLocalStorage` for tests, `FileLocalStorage` (a small
  JSON document) for real runs.
- `IdentityContext`: The process-wide identity. `get_or_create()` initializes
  it once; `user_id`, `username` and `identity` are read-only accessors that
  fail loudly if read before initialization.
- `init_identity_context` / `get_identity_context`: Access to the single
  instance, which `api.dependencies` injects into endpoints.
"""

import asyncio
import json
import logging
import os
import random
import string
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Union

from core.models import Identity

logger = logging.getLogger(__name__)

USER_ID_KEY = "userId"
USERNAME_KEY = "username"
DEFAULT_IDENTITY_FILE = "./.gallery_identity.json"

COLORS = ["Red", "Blue", "Green", "Purple", "Orange", "Pink", "Yellow", "Cyan"]
ANIMALS = ["Panda", "Tiger", "Eagle", "Fox", "Wolf", "Bear", "Lion", "Shark"]

_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_user_id(rng: Optional[random.Random] = None) -> str:
    """Random 9-character base-36 id"""
    rng = rng or random.SystemRandom()
    return "".join(rng.choice(_ID_ALPHABET) for _ in range(9))


def generate_username(rng: Optional[random.Random] = None) -> str:
    rng = rng or random.SystemRandom()
    return f"{rng.choice(COLORS)}{rng.choice(ANIMALS)}"


class LocalStorage(ABC):
    """String key/value storage local to this client"""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        pass


class MemoryLocalStorage(LocalStorage):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value


class FileLocalStorage(LocalStorage):
    """Local storage persisted as a JSON object on disk"""

    def __init__(self, path: Union[str, Path, None] = None):
        self.path = Path(
            path or os.getenv("GALLERY_IDENTITY_FILE", DEFAULT_IDENTITY_FILE)
        )

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable identity file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def get_item(self, key: str) -> Optional[str]:
        value = self._read().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        tmp_path.replace(self.path)


class IdentityContext:
    """Process-wide local identity with init-on-first-use semantics"""

    def __init__(self, storage: LocalStorage, rng: Optional[random.Random] = None):
        self.storage = storage
        self._rng = rng
        self._identity: Optional[Identity] = None
        self._lock = asyncio.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._identity is not None

    @property
    def identity(self) -> Identity:
        if self._identity is None:
            raise RuntimeError("Identity accessed before get_or_create()")
        return self._identity

    @property
    def user_id(self) -> str:
        return self.identity.user_id

    @property
    def username(self) -> str:
        return self.identity.username

    async def get_or_create(self) -> Identity:
        """Return the persisted identity, generating and storing missing values"""
        if self._identity is not None:
            return self._identity

        async with self._lock:
            if self._identity is not None:
                return self._identity

            user_id = self.storage.get_item(USER_ID_KEY)
            username = self.storage.get_item(USERNAME_KEY)

            if not user_id:
                user_id = generate_user_id(self._rng)
                self.storage.set_item(USER_ID_KEY, user_id)
                logger.info("Generated new local user id")
            if not username:
                username = generate_username(self._rng)
                self.storage.set_item(USERNAME_KEY, username)
                logger.info(f"Generated new display name {username}")

            self._identity = Identity(user_id=user_id, username=username)
            return self._identity


# Global identity context instance
identity_context: Optional[IdentityContext] = None


def init_identity_context(storage: Optional[LocalStorage] = None) -> IdentityContext:
    """Initialize the process-wide identity context"""
    global identity_context
    identity_context = IdentityContext(storage or FileLocalStorage())
    return identity_context


def get_identity_context() -> IdentityContext:
    global identity_context
    if identity_context is None:
        identity_context = IdentityContext(FileLocalStorage())
    return identity_context
