"""Infrastructure adapters: database pool, identity, storage, redis."""
