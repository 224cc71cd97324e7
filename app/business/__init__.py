# ==== BUSINESS LOGIC PACKAGE ==== #

"""
Business logic package for domain rules and policies.

This package contains the per-tenant business rule engine, its validators,
and the default rule catalog shipped with new tenants.
"""
