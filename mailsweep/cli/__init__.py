"""
CLI module for mailsweep.

Provides click-based command-line interface with subcommands.
"""

from .main import cli

__all__ = ['cli']
