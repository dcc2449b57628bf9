"""Authentication module.

Registers users, checks passwords and issues signed identity tokens (JWT).
The same token is the credential a socket presents at connect.

Services:
    - IdentityProvider: register, login, issue_token, verify.
"""
