"""
Product In-Situ Placer: place product photos into AI-generated scenes
"""
__version__ = "2.0.0"
