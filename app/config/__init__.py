"""Configuration module for the league admin application."""
from .settings import AppConfig, load_settings

__all__ = ["AppConfig", "load_settings"]
