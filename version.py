"""
Single source of the scanctl version.
"""

VERSION = "0.1.0"
