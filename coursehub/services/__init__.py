"""Persistence, blob storage and shared helpers."""
