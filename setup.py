"""
Setup configuration for the openroute package.
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="openroute",
    version="0.1.0",
    author="openroute Contributors",
    description="Typed request validation, OpenAPI generation and auto-CRUD endpoints over SQL storage",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["openroute", "openroute.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: Internet :: WWW/HTTP",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "dev": [
            "pytest>=6.0",
            "pytest-cov",
            "ruff",
            "mypy",
            "openapi-spec-validator>=0.7.0",
        ],
        "test": [
            "pytest>=6.0",
            "openapi-spec-validator>=0.7.0",
        ],
    },
)
