"""Tenancy bounded context.

Keeps tenants, their owning identities, profiles and provisioning ledger
entries mutually consistent: provisions tenants through a step-wise saga,
repairs drift with a locked sweep, and reports invariant violations.
"""
