"""CRUD handlers grouped by entity. Each module exports a ``TOOLS`` list."""
