"""phylomat: neighbor joining, quartet support and Mantel tests on distance matrices."""

__version__ = "0.1.0"

__all__ = [
    "matrix",
    "phylip",
    "checks",
    "trees",
    "nj",
    "support",
    "mantel",
    "compare",
    "exceptions",
    "cli",
]
