"""Persistence: catalog, learned matches and quote history (SQLModel)."""
