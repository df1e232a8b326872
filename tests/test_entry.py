"""Tests for VaultEntry serialization and encryption."""

import json

import pytest

from keyra.errors import AuthenticationFailure, MalformedEnvelope
from keyra.vault import VaultEntry, decrypt, encrypt

EXAMPLE = VaultEntry(
    title="Example",
    username="u",
    secret="p",
    url="ex.com",
    category="passwords",
)


class TestVaultEntry:
    def test_canonical_json(self):
        assert EXAMPLE.to_json() == (
            '{"title":"Example","username":"u","secret":"p","url":"ex.com","category":"passwords"}'
        )

    def test_from_canonical_dict(self):
        assert VaultEntry.from_dict(json.loads(EXAMPLE.to_json())) == EXAMPLE

    def test_legacy_password_key(self):
        entry = VaultEntry.from_dict({"title": "Old", "password": "hunter2"})
        assert entry.secret == "hunter2"
        assert entry.username == ""

    def test_secret_key_wins_over_legacy(self):
        entry = VaultEntry.from_dict({"secret": "new", "password": "old"})
        assert entry.secret == "new"

    def test_unknown_keys_ignored(self):
        entry = VaultEntry.from_dict({"title": "T", "favorite": True})
        assert entry == VaultEntry(title="T")

    def test_merged_applies_only_given_fields(self):
        changed = EXAMPLE.merged(title="Renamed", secret=None)
        assert changed.title == "Renamed"
        assert changed.secret == "p"
        assert EXAMPLE.title == "Example"

    def test_encrypt_decrypt(self):
        envelope = EXAMPLE.encrypt("secureMasterPassword")
        assert VaultEntry.decrypt(envelope, "secureMasterPassword") == EXAMPLE

    def test_decrypt_wrong_password(self):
        envelope = EXAMPLE.encrypt("secureMasterPassword")
        with pytest.raises(AuthenticationFailure):
            VaultEntry.decrypt(envelope, "nope")

    def test_decrypt_non_entry_payload(self):
        envelope = encrypt("just text", "pw")
        with pytest.raises(MalformedEnvelope):
            VaultEntry.decrypt(envelope, "pw")

    def test_decrypt_non_object_payload(self):
        envelope = encrypt(json.dumps(["title", "secret"]), "pw")
        with pytest.raises(MalformedEnvelope):
            VaultEntry.decrypt(envelope, "pw")

    def test_envelope_carries_canonical_json(self):
        envelope = EXAMPLE.encrypt("pw")
        assert decrypt(envelope, "pw") == EXAMPLE.to_json()
