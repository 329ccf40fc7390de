"""auth/ -- Credentials, secret hashing, token encryption and sessions for OTPGate.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or verification/.
api/ and verification/ import from auth/, not the other way around.
"""
