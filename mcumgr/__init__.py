"""Device-side management protocol: SMP and OMP request processing with OS, shell and statistics command groups."""

__version__ = "0.1.0"