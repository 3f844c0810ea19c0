from localactions.state.store import SecretStore, StateStore, StateStoreError, StorageKey

__all__ = ["SecretStore", "StateStore", "StateStoreError", "StorageKey"]
