"""
Cache Domain Module

Value objects (keys, expiration policies) and the backend interface the
cache-aside layer is written against.
"""
