"""
Storage backends for ask history.
"""
