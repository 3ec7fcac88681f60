"""
Connection profiles and their persisted state.
"""
