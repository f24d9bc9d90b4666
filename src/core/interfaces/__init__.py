"""Interfaces/abstracciones del Core.

Por qué:
- `host`: capacidades del entorno (env, secure store, ficheros, HTTP, reloj).
- `provider`: contrato que implementa cada proveedor de uso.
- El Core depende de estos Protocol, nunca de los adaptadores concretos.
"""
