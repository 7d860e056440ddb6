"""
User, binding and configuration registries.

Protocols:
    - UserRegistry, BindingRegistry, ConfigStore

Implementations:
    - In-memory: InMemoryUserRegistry, InMemoryBindingRegistry, InMemoryConfigStore
    - Database (SQLAlchemy): DatabaseUserRegistry, DatabaseBindingRegistry,
      DatabaseConfigStore, plus create_schema
"""

from idmigrate.registry.database import (
    DatabaseBindingRegistry,
    DatabaseConfigStore,
    DatabaseUserRegistry,
    create_schema,
)
from idmigrate.registry.in_memory import (
    InMemoryBindingRegistry,
    InMemoryConfigStore,
    InMemoryUserRegistry,
)
from idmigrate.registry.interface import BindingRegistry, ConfigStore, UserRegistry

__all__ = [
    "BindingRegistry",
    "ConfigStore",
    "DatabaseBindingRegistry",
    "DatabaseConfigStore",
    "DatabaseUserRegistry",
    "InMemoryBindingRegistry",
    "InMemoryConfigStore",
    "InMemoryUserRegistry",
    "UserRegistry",
    "create_schema",
]
