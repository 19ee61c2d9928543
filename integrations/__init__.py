"""
Session store backends.
"""
