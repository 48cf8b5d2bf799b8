"""
Shared engines and helpers.
"""
