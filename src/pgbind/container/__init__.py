"""Ephemeral database containers."""

from pgbind.container.provisioner import Provisioner, ephemeral_database

__all__ = ["Provisioner", "ephemeral_database"]
