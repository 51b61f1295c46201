"""auth/ -- Identity, credentials and the access policy for the store ratings service.

Layer rule: auth/ imports only core/, stdlib and third-party libraries.
It does NOT import from api/ or catalog/.
api/ and catalog/ import from auth/, not the other way around.
"""
