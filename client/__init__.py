"""
Content repository adapters consumed by the feed ranking core.
"""
