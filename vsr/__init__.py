"""Versioned Subset Reconciler (VSR).

Derives per-version routing overrides (Istio-style DestinationRules) from a
baseline routing object:
 - locate the baseline carrying the default version for each service host
 - create a `<unique-name>-<host>` override routing to the target version
 - track per-host lifecycle status for the owning resource
 - record owners on the override so watch events reach every owner
"""
