"""Authentication: SSO error types and provider engines (see ``sso_gateway.auth.sso``)."""
