import base64
import json
from pathlib import Path

import pytest

from adapters.host import MemorySecretStore
from conftest import DictEnv, MemoryStateFiles
from core.domain.errors import AuthError
from core.domain.models import CredentialSource
from core.services.credential_resolver import (
    CredentialCache,
    CredentialResolver,
    cache_source,
    companion_cli_source,
    decode_companion_secret,
    environment_source,
    read_env_first,
    secret_store_source,
    state_file_source,
    token_from_json,
)

CACHE = "usage-probe-test"
STATE = Path("/state/test/auth.json")


class ExplodingStore(MemorySecretStore):
    def read(self, service):
        raise RuntimeError("keychain locked")


def _resolver(secrets, files, env):
    cache = CredentialCache(secrets=secrets, service=CACHE, files=files, mirror_path=STATE)
    return CredentialResolver(
        sources=[
            cache_source(cache),
            companion_cli_source(secrets, "gh:github.com"),
            state_file_source(files, STATE),
            environment_source(env, ("GH_TOKEN", "GITHUB_TOKEN")),
        ],
        cache=cache,
    )


def test_read_env_first_skips_blank_and_failing_getters():
    env = DictEnv({"A": RuntimeError("boom"), "B": "   ", "C": " value "})
    assert read_env_first(env, ("A", "B", "C")) == ("value", "C")
    assert read_env_first(env, ("A", "B")) is None


def test_decode_companion_secret_handles_go_keyring_prefix():
    encoded = base64.b64encode(b"gho_secret").decode()
    assert decode_companion_secret(f"go-keyring-base64:{encoded}") == "gho_secret"
    assert decode_companion_secret("  gho_plain  ") == "gho_plain"


def test_token_from_json():
    assert token_from_json('{"token": "abc"}') == "abc"
    assert token_from_json({"token": " xyz "}) == "xyz"
    assert token_from_json("not json") is None
    assert token_from_json(None) is None


def test_resolve_prefers_primary_cache():
    secrets = MemorySecretStore({CACHE: json.dumps({"token": "cached"}), "gh:github.com": "gh-token"})
    credential = _resolver(secrets, MemoryStateFiles(), DictEnv()).resolve()

    assert credential.value == "cached"
    assert credential.source is CredentialSource.PRIMARY_CACHE


def test_resolve_falls_through_failing_and_empty_sources():
    files = MemoryStateFiles()
    files.data[STATE] = {"token": "from-file"}
    resolver = _resolver(ExplodingStore(), files, DictEnv({"GH_TOKEN": "env"}))

    credential = resolver.resolve()

    assert credential.value == "from-file"
    assert credential.source is CredentialSource.LOCAL_STATE_FILE
    assert credential.origin == str(STATE)


def test_resolve_returns_none_when_every_source_is_absent():
    assert _resolver(MemorySecretStore(), MemoryStateFiles(), DictEnv()).resolve() is None


def test_with_fallback_persists_secondary_credential():
    secrets = MemorySecretStore({"gh:github.com": "gh-token"})
    files = MemoryStateFiles()
    resolver = _resolver(secrets, files, DictEnv())
    credential = resolver.resolve()

    payload, used = resolver.with_fallback(credential, lambda cred: {"ok": cred.value})

    assert payload == {"ok": "gh-token"}
    assert used.source is CredentialSource.COMPANION_CLI_STORE
    assert json.loads(secrets.read(CACHE)) == {"token": "gh-token"}
    assert files.data[STATE] == {"token": "gh-token"}


def test_with_fallback_invalidates_stale_cache_and_retries_once():
    secrets = MemorySecretStore({CACHE: json.dumps({"token": "stale"}), "gh:github.com": "fresh"})
    files = MemoryStateFiles()
    resolver = _resolver(secrets, files, DictEnv())
    attempts = []

    def fetch(cred):
        attempts.append(cred.value)
        if cred.value == "stale":
            raise AuthError("Token invalid.")
        return {"ok": True}

    payload, used = resolver.with_fallback(resolver.resolve(), fetch)

    assert payload == {"ok": True}
    assert attempts == ["stale", "fresh"]
    assert used.value == "fresh"
    assert json.loads(secrets.read(CACHE)) == {"token": "fresh"}


def test_with_fallback_reraises_when_no_other_source():
    secrets = MemorySecretStore({CACHE: json.dumps({"token": "stale"})})
    files = MemoryStateFiles()
    resolver = _resolver(secrets, files, DictEnv())

    def fetch(cred):
        raise AuthError("Token invalid.")

    with pytest.raises(AuthError):
        resolver.with_fallback(resolver.resolve(), fetch)

    assert secrets.read(CACHE) is None
    assert files.data[STATE] is None


def test_with_fallback_does_not_retry_non_cache_auth_failure():
    secrets = MemorySecretStore({"gh:github.com": "gh-token"})
    resolver = _resolver(secrets, MemoryStateFiles(), DictEnv({"GH_TOKEN": "env-token"}))
    attempts = []

    def fetch(cred):
        attempts.append(cred.value)
        raise AuthError("Token invalid.")

    with pytest.raises(AuthError):
        resolver.with_fallback(resolver.resolve(), fetch)

    assert attempts == ["gh-token"]
    assert secrets.read(CACHE) is None


def test_secret_store_source_defaults_to_os_secure_store():
    secrets = MemorySecretStore({"svc": " key "})
    credential = secret_store_source(secrets, "svc").load()
    assert credential.value == "key"
    assert credential.source is CredentialSource.OS_SECURE_STORE


def test_credential_repr_hides_value():
    env = DictEnv({"GH_TOKEN": "super-secret"})
    credential = environment_source(env, ("GH_TOKEN",)).load()
    assert "super-secret" not in repr(credential)
    assert credential.origin == "GH_TOKEN"
