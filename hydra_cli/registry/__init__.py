"""
Registry access: connection lifecycle, key namespace and the
query/mutation engine.
"""
