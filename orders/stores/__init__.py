"""OrderStore implementations."""

from orders.stores.memory import InMemoryOrderStore
from orders.stores.postgres import PostgresOrderStore, connect_postgres_store

__all__ = ["InMemoryOrderStore", "PostgresOrderStore", "connect_postgres_store"]
