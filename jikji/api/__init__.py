"""HTTP endpoints: Prometheus exposition and health probes."""
