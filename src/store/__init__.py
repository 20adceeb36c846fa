"""Storage and durability layer.

This package owns per-model collections, id sequences, the JSON state
file, and the serialized write queue behind the memory connector.
"""
