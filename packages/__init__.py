"""Shared expense approval packages.

This namespace exposes the approval workflow core that can be imported by
any application inside the monorepo. Individual packages should keep their
public API small and well-documented to encourage reuse.
"""
