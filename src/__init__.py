"""
Top-level package for the project.

We keep three sibling subpackages:
- core: grid, configuration, errors, source terms and right-hand sides
- operators: stencil assembly, CSR storage, sparse solves
- algorithm: benchmark loop over solve configurations + convergence studies
"""

__all__ = ["core", "operators", "algorithm"]
