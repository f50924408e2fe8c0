from setuptools import setup, find_packages

setup(
    name="phylomat",
    version="0.1.0",
    description="Neighbor-joining trees, quartet support and Mantel tests for distance matrices",
    packages=find_packages("phylomat"),
    package_dir={"": "phylomat"},
    install_requires=[
        "numpy>=1.24",
        "scipy>=1.10",
        "treeswift>=1.1",
    ],
    extras_require={
        "dev": ["pytest>=7.4"],
    },
    entry_points={
        "console_scripts": [
            "phylomat=phylomat.cli:main",
        ],
    },
)
