"""
Provisioning, cloning and verification harness for NDB-managed databases on Kubernetes.
"""

__version__ = "0.1.0"
