"""Boundary adapters: browser host, storage and export."""
