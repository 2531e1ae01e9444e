"""Core domain layer for keycustody."""
