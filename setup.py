"""Setup script for kgdiagram."""

from setuptools import setup, find_packages

setup(
    name="kgdiagram",
    version="0.1.0",
    description="Graph data acquisition and reconciliation for RDF/OWL diagrams",
    author="kgdiagram Team",
    python_requires=">=3.10",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "pydantic>=2.6.0",
        "pydantic-settings>=2.1.0",
        "click>=8.1.0",
        "rich>=13.7.0",
        "python-dotenv>=1.0.0",
        "httpx>=0.26.0",
        "tenacity>=8.2.0",
        "structlog>=24.1.0",
        "rdflib>=7.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.23.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "kgdiagram=kgdiagram.cli.commands:cli",
        ],
    },
)
