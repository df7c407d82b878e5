"""
Database module for In-Situ Placer
"""
from .models import Account, Base, Favorite, GeneratedImage, Share, UserProfile

__all__ = [
    "Account",
    "Base",
    "Favorite",
    "GeneratedImage",
    "Share",
    "UserProfile",
]
