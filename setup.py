"""
Setup script for learnpath-engine.

learnpath-engine is the adaptive learning-path core of the K-12 learning
platform. It serves three roles:

1. Placement - Score placement attempts and seed a student's first path
2. Adaptation - Update difficulty, detect misconceptions, insert remediation
3. Operator tooling - Inspect and replay adaptive events from the terminal

The 'learnpath' command is the operator entry point; the HTTP layer imports
the engine directly.
"""

from setuptools import find_packages, setup

setup(
    name="learnpath-engine",
    version="1.0.0",
    description="Adaptive learning-path engine: placement, difficulty adaptation, remediation",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="Learning Platform Team",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Database
        "sqlalchemy>=2.0.0",
        "psycopg2-binary>=2.9.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "learnpath=learnpath.cli.main:run",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="learning adaptive placement remediation education",
)
