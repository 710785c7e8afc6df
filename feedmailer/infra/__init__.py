"""Infra layer utilities (state storage, SMTP delivery)."""

from .mailer import Mailer
from .storage import PersistentData, StateStore

__all__ = ["Mailer", "PersistentData", "StateStore"]
