"""Infrastructure adapters: store, blob storage, provider and exports."""
