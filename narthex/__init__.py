"""
Narthex - remote file operations confined to a single directory tree.

Subpackages:
- narthex.FileSystemGate: path resolver, file handlers and archive engine
- narthex.Config: schema-driven configuration
- narthex.shared: logging, health and config-file helpers
"""

__version__ = "0.3.0"
