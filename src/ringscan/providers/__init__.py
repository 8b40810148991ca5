"""Backend provider implementations.

Each provider module exports a `Provider` class alias for the main provider class,
along with its credentials type. Providers implement `ScanBackend`.

Available providers (require optional dependencies):
- cassandra: Apache Cassandra / ScyllaDB via cassandra-driver

Provider modules are not imported here so the core package works without
their drivers installed; import `ringscan.providers.cassandra` directly.
"""
