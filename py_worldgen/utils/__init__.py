"""
Utility modules for world generation.
"""
