"""Resolución de credenciales por cadena de fuentes.

Responsabilidad:
- Probar fuentes en un orden fijo (caché propia -> secure store del SO ->
  store del CLI compañero -> fichero de estado -> entorno) y devolver la primera
  credencial disponible.
- Cada fuente es tolerante a fallos: una excepción o un valor vacío se registra
  en el log y cuenta como "ausente".
- Persistir en la caché primaria tras un éxito con una fuente secundaria e
  invalidarla cuando el proveedor la rechaza (401/403).
"""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Sequence, TypeVar

from core.coercion import as_object, read_string, try_parse_json
from core.domain.errors import AuthError
from core.domain.models import Credential, CredentialSource
from core.fallback import Verdict, try_in_order
from core.interfaces.host import EnvReader, SecretStore, StateFiles

logger = logging.getLogger(__name__)

GO_KEYRING_BASE64_PREFIX = "go-keyring-base64:"

T = TypeVar("T")


def read_env_first(env: EnvReader, names: Sequence[str]) -> tuple[str, str] | None:
    """Primer valor no vacío (tras `strip`) de `names`, con el nombre que lo aportó."""

    for name in names:
        try:
            raw = env.get(name)
        except Exception as exc:
            logger.warning("env read failed for %s: %s", name, exc)
            continue
        value = read_string(raw)
        if value:
            return value, name
    return None


def decode_companion_secret(raw: str) -> str | None:
    """Decodifica entradas de keyring de CLIs Go (`go-keyring-base64:<b64>`)."""

    if raw.startswith(GO_KEYRING_BASE64_PREFIX):
        encoded = raw[len(GO_KEYRING_BASE64_PREFIX):]
        raw = base64.b64decode(encoded).decode("utf-8")
    return read_string(raw)


def token_from_json(raw: Any) -> str | None:
    """Extrae `token` de `{"token": ...}` (string JSON o dict ya parseado)."""

    data = as_object(try_parse_json(raw)) if isinstance(raw, str) else as_object(raw)
    if data is None:
        return None
    return read_string(data.get("token"))


@dataclass
class CredentialCache:
    """Caché primaria de credenciales (get/set/delete) inyectada en el resolver.

    Se guarda en el secure store como `{"token": ...}` y, opcionalmente, se
    refleja en un fichero de estado local.
    """

    secrets: SecretStore
    service: str
    files: StateFiles | None = None
    mirror_path: Path | None = None

    def get(self) -> str | None:
        return token_from_json(self.secrets.read(self.service))

    def set(self, value: str) -> None:
        payload = {"token": value}
        try:
            self.secrets.write(self.service, json.dumps(payload))
        except Exception as exc:
            logger.warning("secure store write failed for %s: %s", self.service, exc)
        self._write_mirror(payload)

    def delete(self) -> None:
        try:
            self.secrets.delete(self.service)
        except Exception as exc:
            logger.info("secure store delete failed for %s: %s", self.service, exc)
        self._write_mirror(None)

    def _write_mirror(self, value: Any) -> None:
        if self.files is None or self.mirror_path is None:
            return
        try:
            self.files.write_json(self.mirror_path, value)
        except Exception as exc:
            logger.warning("state file write failed for %s: %s", self.mirror_path, exc)


@dataclass
class CredentialSourceReader:
    """Una fuente de la cadena: sabe leer un valor y de dónde viene."""

    source: CredentialSource
    origin: str
    loader: Callable[[], str | tuple[str, str] | None]

    def load(self) -> Credential | None:
        loaded = self.loader()
        if loaded is None:
            return None
        if isinstance(loaded, tuple):
            value, origin = loaded
        else:
            value, origin = loaded, self.origin
        value = read_string(value)
        if not value:
            return None
        return Credential(value=value, source=self.source, origin=origin)

    def __str__(self) -> str:
        return f"{self.source.value}:{self.origin}"


def cache_source(cache: CredentialCache) -> CredentialSourceReader:
    return CredentialSourceReader(
        source=CredentialSource.PRIMARY_CACHE,
        origin=cache.service,
        loader=cache.get,
    )


def secret_store_source(
    secrets: SecretStore,
    service: str,
    *,
    source: CredentialSource = CredentialSource.OS_SECURE_STORE,
    decode: Callable[[str], str | None] = read_string,
) -> CredentialSourceReader:
    def _load() -> str | None:
        raw = secrets.read(service)
        return decode(raw) if raw else None

    return CredentialSourceReader(source=source, origin=service, loader=_load)


def companion_cli_source(secrets: SecretStore, service: str) -> CredentialSourceReader:
    return secret_store_source(
        secrets,
        service,
        source=CredentialSource.COMPANION_CLI_STORE,
        decode=decode_companion_secret,
    )


def state_file_source(files: StateFiles, path: Path) -> CredentialSourceReader:
    def _load() -> str | None:
        if not files.exists(path):
            return None
        return token_from_json(files.read_json(path))

    return CredentialSourceReader(
        source=CredentialSource.LOCAL_STATE_FILE,
        origin=str(path),
        loader=_load,
    )


def environment_source(env: EnvReader, names: Sequence[str]) -> CredentialSourceReader:
    return CredentialSourceReader(
        source=CredentialSource.ENVIRONMENT,
        origin=",".join(names),
        loader=lambda: read_env_first(env, names),
    )


@dataclass
class CredentialResolver:
    """Cadena ordenada de fuentes + caché primaria opcional."""

    sources: Sequence[CredentialSourceReader]
    cache: CredentialCache | None = None

    def resolve(self) -> Credential | None:
        return self._resolve_from(self.sources)

    def resolve_after(self, credential: Credential) -> Credential | None:
        """Re-resuelve con las fuentes de menor prioridad que la de `credential`."""

        for index, reader in enumerate(self.sources):
            if reader.source is credential.source:
                return self._resolve_from(self.sources[index + 1:])
        return None

    def persist(self, credential: Credential) -> None:
        if self.cache is None or credential.source is CredentialSource.PRIMARY_CACHE:
            return
        logger.info("persisting credential from %s to primary cache", credential.source.value)
        self.cache.set(credential.value)

    def invalidate(self, credential: Credential) -> None:
        if self.cache is None or credential.source is not CredentialSource.PRIMARY_CACHE:
            return
        logger.info("cached credential rejected, invalidating %s", self.cache.service)
        self.cache.delete()

    def with_fallback(
        self,
        credential: Credential,
        fetch: Callable[[Credential], T],
    ) -> tuple[T, Credential]:
        """Ejecuta `fetch`; ante `AuthError` con la caché, invalida y reintenta una vez.

        Tras un éxito con una credencial no primaria, la persiste en la caché.
        """

        try:
            payload = fetch(credential)
        except AuthError:
            if credential.source is not CredentialSource.PRIMARY_CACHE:
                raise
            self.invalidate(credential)
            fallback = self.resolve_after(credential)
            if fallback is None:
                raise
            logger.info("retrying with credential from %s", fallback.source.value)
            payload = fetch(fallback)
            credential = fallback

        self.persist(credential)
        return payload, credential

    def _resolve_from(self, readers: Sequence[CredentialSourceReader]) -> Credential | None:
        outcome = try_in_order(
            readers,
            attempt=lambda reader: reader.load(),
            classify=_classify_source,
            log=logger,
            level=logging.INFO,
        )
        if outcome.value is not None:
            logger.info("credential loaded from %s", outcome.item)
        return outcome.value


def _classify_source(
    reader: CredentialSourceReader,
    credential: Credential | None,
    error: Exception | None,
) -> Verdict[Credential]:
    if error is not None:
        return Verdict.reject("error", error)
    if credential is None:
        return Verdict.reject("absent")
    return Verdict.accept(credential)
