"""
Multi-tenant SSO gateway for e-commerce stores.

Stores configure OIDC or SAML 2.0 identity providers; customers sign in
through them and receive a deterministic native password or a Multipass
login URL for the storefront.
"""

__version__ = "1.0.0"
