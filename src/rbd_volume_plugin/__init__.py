"""Docker volume plugin backed by Ceph RBD images."""

__version__ = "0.3.0"
