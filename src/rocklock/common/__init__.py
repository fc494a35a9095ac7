"""Shared helpers (logging, HTTP) used across rocklock modules."""
