"""Setup script for modelflow: package discovery with setuptools."""
from setuptools import setup, find_packages

# Explicit package discovery for reliable build (editable and wheel)
setup(
    name="modelflow",
    version="0.1.0",
    description="Declarative, typed dataflow graphs with reactive propagation",
    packages=find_packages(where=".", include=("modelflow", "modelflow.*")),
    package_dir={"": "."},
    python_requires=">=3.9",
    install_requires=[
        "omegaconf>=2.3",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
)
