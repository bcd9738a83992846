"""Garment synthesis orchestration service."""
