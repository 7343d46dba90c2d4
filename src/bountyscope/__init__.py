"""
BountyScope - Bug bounty code search cross-referencing

Cross-references publicly listed blockchain bug bounty programs with
code search results to surface high-value code patterns.

Copyright (c) 2025
Licensed under MIT License
"""

__version__ = "1.0.0"
__author__ = "BountyScope Team"
__status__ = "Development"
