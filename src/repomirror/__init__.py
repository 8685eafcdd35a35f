"""
repomirror - keep bare mirrors of a GitHub account's repositories.
"""

__version__ = "0.4.0"
