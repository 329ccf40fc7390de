"""verification/ -- OTP and password-reset workflows for OTPGate.

Layer rule: verification/ may import from auth/ and core/.
It does NOT import from api/. api/ imports from verification/, not the
other way around.
"""
