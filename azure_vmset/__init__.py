"""Azure VM-set resolution and load balancer backend pool reconciliation."""

__version__ = "0.1.0"
