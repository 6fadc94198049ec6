"""
gbpilot: closed-loop controller letting a vision/text model play Game Boy games.
"""

__version__ = "0.1.0"
