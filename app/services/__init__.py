# ==== SERVICES PACKAGE ==== #

"""
Services package for progress tracking workflows.

This package contains the confirmation and lock workflow, rule
administration, mutation gates for task updates and allocations, and the
best-effort audit trail.
"""
