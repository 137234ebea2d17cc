"""Transport layer: terminal I/O for graphics commands."""
