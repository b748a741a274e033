"""
dockrs
Command-line client to inspect and manage Docker containers, images, volumes and networks
"""

__version__ = "0.1.0"
__description__ = "A CLI for interacting with a Docker daemon"

__all__ = [
    '__version__',
    '__description__'
]
