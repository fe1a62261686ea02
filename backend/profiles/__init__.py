"""
Profiles Module

Profile provider client and the routes that expose cached profiles and images.
"""

from .service import ProfileService

__all__ = ["ProfileService"]
