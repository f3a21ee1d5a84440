import pytest
import yaml
from cryptography.fernet import Fernet
from solders.keypair import Keypair

from market_maker.accounts import AccountStore, keypair_from_secret
from market_maker.config import GlobalSettings
from market_maker.errors import InvalidSettings


def test_create_persists_account(tmp_path):
    path = tmp_path / "accounts.yaml"
    store = AccountStore(path)
    account = store.create(GlobalSettings(min_amount=0.02, max_amount=0.03))

    reloaded = AccountStore(path).get(account.id)

    assert reloaded.public_key == account.public_key
    assert reloaded.secret_key == account.secret_key
    assert str(keypair_from_secret(reloaded.secret_key).pubkey()) == account.public_key
    assert reloaded.custom_settings.enabled is False
    assert reloaded.custom_settings.min_amount == 0.02


def test_import_key(tmp_path):
    kp = Keypair()
    store = AccountStore(tmp_path / "accounts.yaml")
    account = store.import_key(str(kp))
    assert account.public_key == str(kp.pubkey())
    assert account.cycles_completed == 0
    assert account.is_active is False


def test_import_rejects_bad_and_duplicate_keys(tmp_path):
    store = AccountStore(tmp_path / "accounts.yaml")
    with pytest.raises(ValueError, match="Invalid private key"):
        store.import_key("not-a-key")
    kp = Keypair()
    store.import_key(str(kp))
    with pytest.raises(ValueError, match="already exists"):
        store.import_key(str(kp))


def test_secret_not_in_repr(tmp_path):
    account = AccountStore(tmp_path / "a.yaml").create()
    assert account.secret_key not in repr(account)


def test_secrets_encrypted_with_fernet_key(tmp_path, monkeypatch):
    key = Fernet.generate_key().decode()
    monkeypatch.setenv("FERNET_KEY", key)
    path = tmp_path / "accounts.yaml"
    account = AccountStore(path).create()

    raw = yaml.safe_load(path.read_text())
    assert raw[0]["secret_key"] != account.secret_key
    assert AccountStore(path).get(account.id).secret_key == account.secret_key


def test_update_settings_merges_fields(tmp_path):
    path = tmp_path / "accounts.yaml"
    store = AccountStore(path)
    account = store.import_key(str(Keypair()))

    store.update_settings(account.id, GlobalSettings(max_amount=0.5), enabled=True, min_amount=0.2)

    override = AccountStore(path).get(account.id).custom_settings
    assert override.enabled is True
    assert override.min_amount == 0.2
    assert override.max_amount == 0.5


def test_activation_and_delete(tmp_path):
    store = AccountStore(tmp_path / "accounts.yaml")
    a, b = store.create(), store.create()
    store.set_active(a.id, True)
    assert store.active() == [a]

    store.delete(a.id)
    assert a.id not in store
    with pytest.raises(KeyError):
        store.delete(a.id)
    with pytest.raises(AttributeError):
        store.update(b.id, secret_key="x")

    store.clear()
    assert len(store) == 0


def test_update_settings_rejects_inconsistent_override(tmp_path):
    path = tmp_path / "accounts.yaml"
    store = AccountStore(path)
    account = store.create()

    with pytest.raises(InvalidSettings):
        store.update_settings(account.id, enabled=True, min_amount=0.5, max_amount=0.1)
    with pytest.raises(InvalidSettings):
        store.update_settings(account.id, min_amout=0.2)

    assert AccountStore(path).get(account.id).custom_settings is None
