"""
entra-grant: provision managed identities and manage their application permissions
"""

__version__ = "1.0.0"
