"""
lifevault — personal document vault, trusted contacts, emergency profile
and activity log over a hosted backend platform.
"""

__version__ = "1.0.0"
