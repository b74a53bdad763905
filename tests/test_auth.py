import threading
from datetime import datetime, timedelta, timezone

import pytest

from linkmanager.auth import AuthGate, hash_password, legacy_hash, verify_password
from linkmanager.errors import OldPasswordIncorrect, WrongPassword
from linkmanager.storage import CONFIG_KEY, MemoryStore, load_config


@pytest.fixture
def gate():
    return AuthGate(MemoryStore(), secret_key="unit-secret")


def test_legacy_hash_is_hex_sha256():
    # sha256("abc") test vector
    assert legacy_hash("abc") == (
        "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
    )


def test_hash_is_salted_argon2():
    first, second = hash_password("abc"), hash_password("abc")
    assert first.startswith("$argon2")
    assert first != second
    assert verify_password("abc", first)
    assert not verify_password("abd", first)


def test_verify_rejects_malformed_hash():
    assert not verify_password("abc", "not-a-hash")


def test_default_password_when_unconfigured(gate):
    assert gate.current_password_hash().startswith("$argon2")
    assert gate.authenticate("linkmanager")
    assert not gate.authenticate("wrong")


def test_change_password(gate):
    token = gate.login("linkmanager")
    assert gate.is_request_authenticated(token)

    new_token = gate.change_password("linkmanager", "hunter2")

    assert not gate.authenticate("linkmanager")
    assert gate.authenticate("hunter2")
    assert not gate.is_request_authenticated(token)
    assert gate.is_request_authenticated(new_token)
    stored = load_config(gate.store).password_hash
    assert stored.startswith("$argon2")
    assert verify_password("hunter2", stored)


def test_legacy_hash_is_upgraded_on_login():
    store = MemoryStore({CONFIG_KEY: {"passwordHash": legacy_hash("old")}})
    gate = AuthGate(store, secret_key="unit-secret")

    assert gate.authenticate("old")
    with pytest.raises(WrongPassword):
        gate.login("wrong")
    assert load_config(store).password_hash == legacy_hash("old")

    gate.login("old")
    upgraded = load_config(store).password_hash
    assert upgraded.startswith("$argon2")
    assert gate.authenticate("old")


def test_legacy_hash_is_replaced_on_password_change():
    store = MemoryStore({CONFIG_KEY: {"passwordHash": legacy_hash("old")}})
    gate = AuthGate(store, secret_key="unit-secret")

    gate.change_password("old", "new")
    stored = load_config(store).password_hash
    assert stored.startswith("$argon2")
    assert gate.authenticate("new")
    assert not gate.authenticate("old")


def test_change_password_wrong_old_keeps_everything(gate):
    token = gate.login("linkmanager")
    with pytest.raises(OldPasswordIncorrect):
        gate.change_password("nope", "x")
    assert gate.authenticate("linkmanager")
    assert gate.is_request_authenticated(token)


def test_login_wrong_password(gate):
    with pytest.raises(WrongPassword):
        gate.login("wrong")


def test_rejects_garbage_and_foreign_tokens(gate):
    assert not gate.is_request_authenticated(None)
    assert not gate.is_request_authenticated("")
    assert not gate.is_request_authenticated("not-a-jwt")
    assert not gate.is_request_authenticated(gate.current_password_hash())

    other = AuthGate(gate.store, secret_key="someone-else")
    assert not gate.is_request_authenticated(other.issue_token())


def test_expired_token(gate):
    stale = gate.issue_token(now=datetime.now(timezone.utc) - timedelta(days=31))
    assert not gate.is_request_authenticated(stale)


def test_revoke_sessions(gate):
    token = gate.login("linkmanager")
    gate.revoke_sessions()
    assert not gate.is_request_authenticated(token)
    assert gate.is_request_authenticated(gate.login("linkmanager"))


def test_generated_secret_is_persisted():
    store = MemoryStore()
    first = AuthGate(store)
    token = first.login("linkmanager")

    assert store.get(CONFIG_KEY)["sessionSecret"]
    # a fresh gate over the same store accepts the token
    assert AuthGate(store).is_request_authenticated(token)


def test_concurrent_gates_share_one_secret():
    store = MemoryStore()
    workers = 8
    barrier = threading.Barrier(workers)
    keys = []

    def read_key():
        barrier.wait()
        keys.append(AuthGate(store).secret_key)

    threads = [threading.Thread(target=read_key) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(keys) == workers
    assert set(keys) == {store.get(CONFIG_KEY)["sessionSecret"]}
