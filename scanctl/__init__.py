"""
scanctl - AI-assisted quality and security scanning of source repositories.
"""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("scanctl")
except PackageNotFoundError:
    # Package is not installed, read from version.py
    try:
        from version import VERSION
        __version__ = VERSION
    except ImportError:
        __version__ = "0.0.0"

__author__ = "Scanctl Team & Contributors"
