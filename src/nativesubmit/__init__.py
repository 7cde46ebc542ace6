"""Native Spark-on-Kubernetes submission without spark-submit."""

__version__ = "0.3.0"
