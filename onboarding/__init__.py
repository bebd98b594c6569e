"""
Onboarding Module for Kover
Domain: company provisioning after signup

Endpoints:
- GET  /v1/onboarding/options        (public)
- GET  /v1/onboarding/check-website  (public, rate-limited)
- POST /v1/onboarding                (requires session token, rate-limited)
"""
