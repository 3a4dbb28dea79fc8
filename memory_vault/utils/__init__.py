"""Shared utilities for Memory Vault AI."""
