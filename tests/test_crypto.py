import pytest
from cryptography.fernet import InvalidToken

from pulseboard.core.crypto import CryptoManager


def test_direct_fernet_key():
    key = CryptoManager.generate_fernet_key()
    manager = CryptoManager(key)

    assert manager.get_encryption_info()['key_source'] == "environment_direct"
    assert manager.decrypt_token(manager.encrypt_token("ya29.secret")) == "ya29.secret"


def test_passphrase_key_is_stable_across_instances():
    first = CryptoManager("a long passphrase")
    second = CryptoManager("a long passphrase")

    encrypted = first.encrypt_token("ya29.secret")

    assert encrypted != "ya29.secret"
    assert second.decrypt_token(encrypted) == "ya29.secret"
    assert second.get_encryption_info()['secure_setup'] is True


def test_other_key_cannot_decrypt():
    encrypted = CryptoManager("one passphrase").encrypt_token("ya29.secret")

    with pytest.raises(InvalidToken):
        CryptoManager("another passphrase").decrypt_token(encrypted)


def test_temporary_key_without_configuration(monkeypatch):
    monkeypatch.delenv("ENCRYPTION_KEY", raising=False)

    info = CryptoManager().get_encryption_info()

    assert info['key_source'] == "temporary"
    assert info['secure_setup'] is False


def test_json_round_trip_and_empty_values():
    manager = CryptoManager("a long passphrase")

    assert manager.decrypt_json(manager.encrypt_json({'session_token': "abc"}), ttl=600) == {'session_token': "abc"}
    with pytest.raises(ValueError):
        manager.encrypt_token("")
    with pytest.raises(ValueError):
        manager.decrypt_token("")
