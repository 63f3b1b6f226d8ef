"""Camps application for the medical camp backend.

This package contains the tenant-scoped models, the services that own
tenant isolation, the visit lifecycle and visitor notifications, and
the DRF views and routes that expose them.
"""
