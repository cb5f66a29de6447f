"""auth/ -- Accounts, sessions, and the admin role gate for OrgDesk.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/, org/, or client/.
api/ and org/ import from auth/, not the other way around.
"""
