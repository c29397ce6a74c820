"""
directory_bootstrap

This package is an idempotent reconciliation engine for Active Directory
objects, plus the forest and site bootstrap built on top of it.

We keep modules small and well separated:
core contains shared data structures, errors, and serialization
network contains subnet derivation and primary interface selection
catalog contains the desired state model and its table sources
directory contains the backend protocols, in memory and PowerShell backends
reconcile contains the reconciler, retry policy, guard, and bootstrap
runner and cli wire configuration, logging, and audit around a run
"""
