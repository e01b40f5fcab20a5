"""
Unit tests for the local identity service

Tests generation, persistence and init-on-first-use of the local identity.
"""
import asyncio
import json
import random
import pytest

from services.identity_service import (
    ANIMALS,
    COLORS,
    USER_ID_KEY,
    USERNAME_KEY,
    FileLocalStorage,
    IdentityContext,
    MemoryLocalStorage,
    generate_user_id,
    generate_username,
    get_identity_context,
    init_identity_context,
)


class TestGenerators:
    """Test id and display name generation"""

    def test_user_id_format(self):
        for _ in range(50):
            user_id = generate_user_id()
            assert len(user_id) == 9
            assert user_id.isalnum()
            assert user_id == user_id.lower()

    def test_username_is_color_and_animal(self):
        for _ in range(50):
            username = generate_username()
            assert any(
                username == f"{color}{animal}" for color in COLORS for animal in ANIMALS
            )

    def test_seeded_generation_is_deterministic(self):
        assert generate_user_id(random.Random(7)) == generate_user_id(random.Random(7))
        assert generate_username(random.Random(7)) == generate_username(random.Random(7))


class TestIdentityContext:
    """Test IdentityContext"""

    def test_accessors_before_init_raise(self):
        context = IdentityContext(MemoryLocalStorage())

        assert not context.is_initialized
        with pytest.raises(RuntimeError):
            context.user_id
        with pytest.raises(RuntimeError):
            context.username

    @pytest.mark.asyncio
    async def test_generates_and_persists(self):
        storage = MemoryLocalStorage()
        context = IdentityContext(storage)

        identity = await context.get_or_create()

        assert context.is_initialized
        assert storage.get_item(USER_ID_KEY) == identity.user_id
        assert storage.get_item(USERNAME_KEY) == identity.username
        assert context.user_id == identity.user_id

    @pytest.mark.asyncio
    async def test_idempotent(self):
        context = IdentityContext(MemoryLocalStorage())

        first = await context.get_or_create()
        second = await context.get_or_create()

        assert first == second

    @pytest.mark.asyncio
    async def test_concurrent_first_use_creates_one_identity(self):
        storage = MemoryLocalStorage()
        context = IdentityContext(storage)

        identities = await asyncio.gather(*(context.get_or_create() for _ in range(5)))

        assert len({identity.user_id for identity in identities}) == 1

    @pytest.mark.asyncio
    async def test_reuses_stored_values(self):
        storage = MemoryLocalStorage({USER_ID_KEY: "abc123xyz", USERNAME_KEY: "Cyan Shark"})

        identity = await IdentityContext(storage).get_or_create()

        assert identity.user_id == "abc123xyz"
        assert identity.username == "Cyan Shark"

    @pytest.mark.asyncio
    async def test_only_missing_value_is_generated(self):
        storage = MemoryLocalStorage({USER_ID_KEY: "abc123xyz"})

        identity = await IdentityContext(storage).get_or_create()

        assert identity.user_id == "abc123xyz"
        assert storage.get_item(USERNAME_KEY) == identity.username


class TestFileLocalStorage:
    """Test FileLocalStorage persistence"""

    @pytest.mark.asyncio
    async def test_identity_survives_restart(self, tmp_path):
        path = tmp_path / "identity.json"

        first = await IdentityContext(FileLocalStorage(path)).get_or_create()
        second = await IdentityContext(FileLocalStorage(path)).get_or_create()

        assert first == second
        assert json.loads(path.read_text())[USER_ID_KEY] == first.user_id

    def test_unreadable_file_treated_as_empty(self, tmp_path):
        path = tmp_path / "identity.json"
        path.write_text("{not json")

        assert FileLocalStorage(path).get_item(USER_ID_KEY) is None

    def test_path_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GALLERY_IDENTITY_FILE", str(tmp_path / "env.json"))

        assert FileLocalStorage().path == tmp_path / "env.json"


class TestGlobalContext:
    """Test the process-wide identity context"""

    def test_init_and_get(self):
        storage = MemoryLocalStorage()

        context = init_identity_context(storage)

        assert get_identity_context() is context
        assert context.storage is storage
