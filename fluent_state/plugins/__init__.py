"""
Bundled plugins.
"""
