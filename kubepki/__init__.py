# kubepki
# File-backed certificate authority for Kubernetes clusters.

__version__ = "0.1.0"
