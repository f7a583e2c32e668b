#!/usr/bin/env python3
"""
Main entry point for the scanctl CLI when run as a module.
"""

from scanctl.cli import main

if __name__ == "__main__":
    main()
