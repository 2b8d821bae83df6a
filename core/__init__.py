"""Core records, schemas and timestamp helpers."""
