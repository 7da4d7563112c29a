#!/usr/bin/env python
"""
Setup script for strata
"""
from pathlib import Path

from setuptools import setup, find_packages

# Read the README file
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding="utf-8")

# Read version from the package
version_ns: dict = {}
exec((this_directory / "src" / "strata" / "_version.py").read_text(encoding="utf-8"), version_ns)
version = version_ns["__version__"]


setup(
    name="strata-config",
    version=version,
    author="Bextia",
    description="Layered, typed and watchable configuration: defaults, files, remote sources and environment",
    long_description=long_description,
    long_description_content_type="text/markdown",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Libraries :: Application Frameworks",
    ],
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.11",
    install_requires=[
        "pydantic>=2.6.0",
        "loguru>=0.7.2",
        "pyyaml>=6.0.0",
        "watchdog>=4.0.0",
        "click>=8.1.0",
        "rich>=13.0.0",
        "requests>=2.31.0",
    ],
    extras_require={
        "dev": [
            "pytest>=8.4.0",
            "pytest-cov>=5.0.0",
            "mypy>=1.8.0",
            "black>=22.0.0",
            "ruff>=0.12.0",
            "types-pyyaml>=6.0.12",
            "types-requests>=2.32.4",
        ],
    },
    entry_points={
        "console_scripts": [
            "strata=strata.cli:main",
        ],
    },
    include_package_data=True,
    package_data={
        "strata": ["**/*.pyi", "py.typed"],
    },
)
