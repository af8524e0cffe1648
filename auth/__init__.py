"""auth/ -- Credentials, session tokens, verification codes and request identity.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/, users/, or mail/.
api/ and users/ import from auth/, not the other way around.
"""
