"""Columnar row batches and a durable, group-committed transaction commit log."""

__version__ = "0.59.0"
__all__ = ["batch", "clog", "clogformat", "commitqueue"]