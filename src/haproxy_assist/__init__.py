"""haproxy-assist - backup-guarded editor for HAProxy configuration files."""

__version__ = "0.1.0"
