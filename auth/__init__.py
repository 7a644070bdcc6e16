"""auth/ -- Credential lifecycle and authorization package for AuthGate.

Layer rule: auth/ imports stdlib, third-party libraries, core/ and mail/.
It does NOT import from api/. api/ imports from auth/, not the other way around.
"""
