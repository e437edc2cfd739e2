"""
Core Infrastructure for log-narrator.

    - config.py: YAML + environment configuration and validation
    - errors.py: Error taxonomy shared by every layer
    - events.py: Ordered subscriber lists for produced events
    - logging/: Structured logging with numeric levels
    - metrics.py: Prometheus metrics collection
"""
