"""auth/ -- Authentication and authorization package for the AI Platform.

Layer rule: auth/ imports from core/ (config) and cache/ (the revocation list
needs the cache capability). It does NOT import from api/, web/, or providers/.
api/ and web/ import from auth/, not the other way around.
"""
