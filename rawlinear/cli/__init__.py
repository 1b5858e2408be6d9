"""
Command line entry points for rawlinear.
"""

from .convert_commands import main

__all__ = ['main']
