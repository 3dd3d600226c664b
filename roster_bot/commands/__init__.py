"""Slash command registration and helpers."""
