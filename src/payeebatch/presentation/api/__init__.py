"""HTTP API for payeebatch."""
