"""
Data loading, normalization and city covariate modules.

Import submodules directly; this package is imported by ``fertility.model``.
"""
