#!/usr/bin/env python3
"""
Command-line entry point for mailsweep.

Equivalent to the installed `mailsweep` console script.
"""

from mailsweep.cli import cli


if __name__ == '__main__':
    cli()
