"""
Setup script for tiny-ddsketch.
"""

from setuptools import setup, find_packages

setup(
    name="tiny-ddsketch",
    version="0.1.0",
    description="Mergeable relative-error quantile sketches for data streams",
    packages=find_packages(exclude=["tests", "tests.*", "examples"]),
    package_data={"tiny_ddsketch": ["py.typed"]},
    python_requires=">=3.9",
    extras_require={"test": ["pytest"]},
)
