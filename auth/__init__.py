"""auth/ -- Credentials, session tokens, and access policy for TaskFlow.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/, tasks/, or admin/.
api/, tasks/ and admin/ import from auth/, not the other way around.
"""
