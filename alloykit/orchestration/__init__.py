"""Orchestration engine: retries, rollback, downloads, fleet lifecycle and reconfiguration."""
