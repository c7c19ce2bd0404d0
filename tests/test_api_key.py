"""
Tests for integrator API keys.
"""
from fieldforms.models.api_key import ApiKey
from fieldforms.core.api_key import (
    API_KEY_PREFIX,
    generate_api_key,
    get_api_key_from_header,
    hash_api_key,
    verify_api_key,
)
from conftest import TENANT_ID


class TestApiKeyHashing:
    """Tests for API key generation and hashing."""

    def test_generated_keys_are_prefixed_and_unique(self):
        keys = {generate_api_key() for _ in range(10)}

        assert len(keys) == 10
        assert all(key.startswith(API_KEY_PREFIX) for key in keys)

    def test_hash_is_sha256_hex(self):
        hashed = hash_api_key("ffe_example")

        assert len(hashed) == 64
        assert all(c in '0123456789abcdef' for c in hashed)
        assert hashed == hash_api_key("ffe_example")

    def test_verify(self):
        hashed = hash_api_key("ffe_example")

        assert verify_api_key("ffe_example", hashed) is True
        assert verify_api_key("ffe_other", hashed) is False
        assert verify_api_key("", hashed) is False


class TestApiKeyLookup:

    async def test_active_key_found(self, db_session):
        plain_key = generate_api_key()
        db_session.add(ApiKey(tenant_id=TENANT_ID, name="ops", key_hash=hash_api_key(plain_key), is_active=True))
        await db_session.commit()

        api_key = await get_api_key_from_header(plain_key, db_session)

        assert api_key is not None
        assert api_key.tenant_id == TENANT_ID

    async def test_inactive_key_ignored(self, db_session):
        plain_key = generate_api_key()
        db_session.add(ApiKey(tenant_id=TENANT_ID, name="old", key_hash=hash_api_key(plain_key), is_active=False))
        await db_session.commit()

        assert await get_api_key_from_header(plain_key, db_session) is None

    async def test_missing_header(self, db_session):
        assert await get_api_key_from_header(None, db_session) is None
