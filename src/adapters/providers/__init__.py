"""Proveedores de uso (implementaciones concretas de `UsageProvider`).

Por qué un paquete:
- Un módulo por proveedor; cada uno declara sus URLs, fuentes de credencial y
  reglas de normalización, y delega el resto en `core.services`.
"""

from __future__ import annotations

from core.config import AppSettings
from core.interfaces.provider import UsageProvider

from adapters.providers.copilot import CopilotProvider
from adapters.providers.minimax import MiniMaxProvider

PROVIDERS: dict[str, type] = {
	MiniMaxProvider.provider_id: MiniMaxProvider,
	CopilotProvider.provider_id: CopilotProvider,
}


def get_provider(provider_id: str, settings: AppSettings | None = None) -> UsageProvider:
	"""Instancia un proveedor por id (`minimax`, `copilot`). `KeyError` si no existe."""

	key = provider_id.strip().lower()
	return PROVIDERS[key](settings)


def all_providers(settings: AppSettings | None = None) -> list[UsageProvider]:
	return [cls(settings) for cls in PROVIDERS.values()]


__all__ = [
	"CopilotProvider",
	"MiniMaxProvider",
	"PROVIDERS",
	"all_providers",
	"get_provider",
]
