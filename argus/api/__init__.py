"""
HTTP API for the detection system.

Example:
    >>> from argus.api import create_app
    >>> app = create_app(system)
"""

from argus.api.app import create_app

__all__ = ["create_app"]
