"""Deployment health monitoring and credential vault for n8n workflow deployments."""

__version__ = "0.1.0"
