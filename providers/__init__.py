"""providers/ -- AI provider configuration records: models, catalog, store, probe.

Layer rule: providers/ imports only core/ and third-party libraries. It knows
nothing about HTTP routing, auth, or the cache.
"""
