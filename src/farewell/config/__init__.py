"""Configuration for the checkpoint store."""

from .store_config import StoreConfig

__all__ = ["StoreConfig"]
