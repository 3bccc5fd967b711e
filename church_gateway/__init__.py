"""
Church Gateway
==============

Proxy and credential-issuance gateway for the church management app.

Packages:
- proxy: forwards file, member and image requests to the backend API
- auth: session resolution, admin gate, member tokens and passwords
- admin: admin role assignment
"""
