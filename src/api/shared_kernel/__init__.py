"""Shared Kernel module.

Components every part of the service agrees to depend on: the audit
vocabulary (entries, capability descriptors, the acting principal) and the
observation context carried by domain probes. Nothing here imports the
tenancy bounded context or the infrastructure layer.
"""
