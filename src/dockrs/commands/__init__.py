"""
CLI Commands Package
Container, resource and system commands
"""

from . import containers
from . import system

__all__ = ['containers', 'system']
