"""Modelos del dominio (Pydantic v2).

Por qué Pydantic en el dominio:
- Nos da validación estricta y documentación autocontenida (Field) sin acoplar
  el Core a librerías de I/O.
- Los invariantes del registro canónico (`0 <= used <= total`, `total > 0`)
  se validan al construirlo: un registro inválido se rechaza, no se "arregla".

Nota:
- Estos modelos describen *qué* es el consumo de un proveedor, no *cómo* se obtiene.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, model_validator
from pydantic.config import ConfigDict


class CredentialSource(str, Enum):
    """Origen de una credencial, de mayor a menor prioridad."""

    PRIMARY_CACHE = "primary_cache"
    OS_SECURE_STORE = "os_secure_store"
    COMPANION_CLI_STORE = "companion_cli_store"
    LOCAL_STATE_FILE = "local_state_file"
    ENVIRONMENT = "environment"


class Realm(str, Enum):
    """Variante regional de un proveedor (credencial + endpoints propios)."""

    GLOBAL = "GLOBAL"
    CN = "CN"


class RealmSelection(str, Enum):
    """Modo de selección de realm configurado por el usuario."""

    AUTO = "AUTO"
    GLOBAL = "GLOBAL"
    CN = "CN"


class Credential(BaseModel):
    """Credencial resuelta para un intento concreto.

    Es inmutable: si el proveedor necesita otra credencial (p.ej. tras un 401),
    el resolver entrega una instancia nueva.
    """

    model_config = ConfigDict(frozen=True)

    value: str = Field(
        ...,
        min_length=1,
        description="Token/API key tal cual se envía al proveedor.",
    )
    source: CredentialSource = Field(
        ...,
        description="Fuente de la que se obtuvo la credencial.",
    )
    origin: str | None = Field(
        default=None,
        description="Detalle de la fuente (nombre de env var, servicio del keychain, ruta).",
    )

    def __repr__(self) -> str:
        return f"Credential(source={self.source.value!r}, origin={self.origin!r})"

    __str__ = __repr__


class CanonicalUsageRecord(BaseModel):
    """Snapshot de consumo normalizado, independiente del proveedor.

    Es el único tipo que viaja entre el Normalizer y el Line Builder.
    """

    model_config = ConfigDict(frozen=True)

    plan_name: str | None = Field(
        default=None,
        description="Nombre del plan (explícito o inferido por tabla de tiers).",
    )
    used: float = Field(
        ...,
        ge=0,
        description="Unidades consumidas en la ventana actual.",
    )
    total: float = Field(
        ...,
        gt=0,
        description="Cupo total de la ventana actual.",
    )
    resets_at_epoch_ms: float | None = Field(
        default=None,
        description="Instante de reset (epoch ms) si se conoce.",
    )
    period_duration_ms: float | None = Field(
        default=None,
        gt=0,
        description="Duración de la ventana (ms) si se conocen inicio y fin.",
    )

    @model_validator(mode="after")
    def _used_within_total(self) -> "CanonicalUsageRecord":
        if self.used > self.total:
            raise ValueError("used must not exceed total")
        return self


class LineFormat(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["count", "percent", "dollars"] = Field(
        default="count",
        description="Cómo debe interpretar la UI los valores `used`/`limit`.",
    )
    suffix: str | None = Field(
        default=None,
        description="Unidad opcional para `count` (p.ej. 'prompts').",
    )


class ProgressLine(BaseModel):
    """Medidor de consumo listo para la capa de render."""

    model_config = ConfigDict(frozen=True)

    type: Literal["progress"] = "progress"
    label: str = Field(..., min_length=1)
    used: float = Field(..., description="Valor consumido en la unidad de `format`.")
    limit: float = Field(..., description="Límite en la unidad de `format`.")
    format: LineFormat = Field(default_factory=LineFormat)
    resets_at: str | None = Field(
        default=None,
        description="Reset en ISO-8601 UTC (`2023-11-15T03:13:20.000Z`).",
    )
    period_duration_ms: float | None = Field(
        default=None,
        description="Duración de la ventana en ms, si se conoce.",
    )


class BadgeLine(BaseModel):
    """Línea de estado textual (p.ej. 'No usage data')."""

    model_config = ConfigDict(frozen=True)

    type: Literal["badge"] = "badge"
    label: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)
    color: str | None = None


Line = Annotated[Union[ProgressLine, BadgeLine], Field(discriminator="type")]


class ProbeResult(BaseModel):
    """Salida de un probe: plan opcional + líneas (nunca vacías en el borde)."""

    model_config = ConfigDict(frozen=True)

    plan: str | None = Field(
        default=None,
        description="Etiqueta de plan para mostrar junto al proveedor.",
    )
    lines: list[Line] = Field(default_factory=list)


class ProviderReport(BaseModel):
    """Agregado por proveedor para CLI/exportación: resultado o mensaje de error."""

    provider: str = Field(..., min_length=1, description="Id del proveedor ('minimax', 'copilot').")
    display_name: str = Field(..., min_length=1)
    result: ProbeResult | None = None
    error: str | None = Field(
        default=None,
        description="Mensaje listo para el usuario cuando el probe falla.",
    )
