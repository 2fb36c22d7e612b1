"""
Cache Domain Module

Key derivation for module caches: parameter variants, key formatting,
value objects, repository interfaces and domain errors.
"""
