"""Setup script for snapflow."""

from setuptools import find_packages, setup

setup(
    name="snapflow",
    version="0.1.0",
    description="Initial snapshot engine for change data capture connectors",
    author="snapflow Team",
    packages=find_packages(include=["snapflow", "snapflow.*"]),
    install_requires=[
        "duckdb>=1.0.0",  # Embedded engine, offset and schema history storage
        "pyarrow>=10.0.0",  # Columnar event batches and Parquet output
        "typer>=0.9.0",  # CLI framework
        "rich>=13.0.0",  # CLI output formatting
        "psycopg2-binary>=2.9.0",  # PostgreSQL driver
        "sqlalchemy>=2.0.0",  # PostgreSQL engine and connection handling
        "pyyaml>=6.0",  # Configuration handling
    ],
    package_data={
        "snapflow": ["py.typed"],
    },
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.1.0",
            "black>=22.1.0",
            "isort>=5.10.1",
            "flake8>=4.0.1",
            "mypy>=1.0.0",  # Type checking
        ],
        "test": [
            "pytest>=7.0.0",
            "pytest-cov>=4.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "snapflow=snapflow.cli.main:app",
        ],
    },
    python_requires=">=3.9",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Database",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],
)
