"""
TeamVault setup.py — Package configuration and CLI entry point.
"""

from setuptools import find_packages, setup

setup(
    name="teamvault",
    version="1.0.0",
    description="TeamVault — Multi-tenant versioned file storage with team access control",
    packages=find_packages(include=["teamvault", "teamvault.*"]),
    python_requires=">=3.11",
    entry_points={
        "console_scripts": [
            "teamvault=teamvault.cli:main",
        ],
    },
    install_requires=[
        "sqlalchemy>=2.0",
        "pydantic>=2.5",
        "bcrypt>=4.1",
        "pyyaml>=6.0",
    ],
    extras_require={
        "postgres": ["psycopg2-binary>=2.9"],
        "test": ["pytest>=7.4"],
    },
)
