"""
Escrow Auth - session lifecycle service and token refresh client.
"""

__version__ = "1.0.0"
