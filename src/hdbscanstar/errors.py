"""Exceptions shared across the HDBSCAN* modules."""

from __future__ import annotations


class PreconditionViolationError(ValueError):
    """Raised when inputs have invalid sizes, indices or parameter ranges."""


__all__ = ["PreconditionViolationError"]
