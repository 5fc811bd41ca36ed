"""
Utilities Module

This module contains logging and port helpers for the tunnel proxy.
"""

from .logging import get_logger, setup_logging, mask_token
from .port_check import is_port_in_use

__all__ = ['get_logger', 'setup_logging', 'mask_token', 'is_port_in_use']
