"""auth/ -- Identity, sessions, and geofence enforcement for GeoGuard.

Layer rule: auth/ imports from core/ and third-party libraries only.
It does NOT import from api/ or client/.
api/ imports from auth/, not the other way around.
"""
