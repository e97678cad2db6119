"""Shared fixtures and fakes for payeebatch tests."""
