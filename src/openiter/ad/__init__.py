"""Algorithmic differentiation support."""

from .tape import RecordingTape, Statement, PASSIVE

__all__ = ['RecordingTape', 'Statement', 'PASSIVE']
