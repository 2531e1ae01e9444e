"""Setup script for keycustody."""

from setuptools import setup, find_packages

with open("requirements.txt") as f:
    requirements = f.read().splitlines()
    # Filter out comments and empty lines
    requirements = [
        line.strip() for line in requirements
        if line.strip() and not line.startswith("#")
    ]

setup(
    name="keycustody",
    version="0.1.0",
    description="Custody and rotation of the administrative SSH keypair",
    author="keycustody Team",
    packages=find_packages(include=["keycustody", "keycustody.*"]),
    install_requires=requirements,
    extras_require={
        "postgres": ["asyncpg>=0.29.0"],
        "test": ["pytest>=7.4.0", "pytest-asyncio>=0.21.0"],
    },
    entry_points={
        "console_scripts": [
            "keycustody=keycustody.cli.main:app",
        ],
    },
    python_requires=">=3.9",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: System Administrators",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
