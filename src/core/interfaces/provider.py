"""Contrato de proveedores de uso.

Por qué Protocol:
- Define un contrato estructural (duck typing) sin herencia rígida.
- Permite que proveedores (MiniMax, Copilot, ...) sean intercambiables y
  testeables sin acoplar el Core a implementaciones concretas.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from core.domain.models import ProbeResult
from core.interfaces.host import HostContext


@runtime_checkable
class UsageProvider(Protocol):
    """Contrato mínimo para un proveedor.

    Reglas de diseño:
    - `probe` es síncrono y secuencial: el scheduler externo decide la concurrencia.
    - Puede lanzar `ProbeError`; el borde del engine lo convierte en texto.
    """

    provider_id: str
    display_name: str

    def probe(self, ctx: HostContext) -> ProbeResult:
        """Consulta el proveedor y devuelve plan + líneas normalizadas."""

        ...
