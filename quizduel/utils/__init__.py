"""Utilities module - time helpers and shared exceptions."""
from quizduel.utils.clock import Clock, utc_now, ensure_utc

__all__ = ["Clock", "utc_now", "ensure_utc"]
