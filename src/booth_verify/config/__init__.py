"""Configurações centralizadas do booth_verify.

Uso típico:
    from booth_verify.config import get_settings
"""

from booth_verify.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
