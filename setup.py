"""
collabcore setup.py — Package configuration and CLI entry point.
"""

from setuptools import find_packages, setup

setup(
    name="collabcore",
    version="1.0.0",
    description="collabcore — Collaborative-edit concurrency and audit-history core",
    packages=find_packages(include=["collabcore", "collabcore.*"]),
    python_requires=">=3.11",
    entry_points={
        "console_scripts": [
            "collabcore=collabcore.cli:main",
        ],
    },
    install_requires=[
        "sqlalchemy>=2.0",
        "pydantic>=2.5",
        "pyyaml>=6.0",
        "httpx>=0.27",
    ],
    extras_require={
        "postgres": [
            "psycopg2-binary>=2.9",
        ],
        "test": [
            "pytest>=7.4",
        ],
    },
)
