"""Helpers shared by the storage drivers and workflows."""
