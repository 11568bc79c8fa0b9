"""
ProjectHub setup.py — Package configuration and CLI entry point.
"""

from setuptools import find_packages, setup

setup(
    name="projecthub",
    version="1.0.0",
    description="ProjectHub — role-scoped data access for project and client collaboration",
    packages=find_packages(include=["projecthub", "projecthub.*"]),
    python_requires=">=3.11",
    entry_points={
        "console_scripts": [
            "projecthub=projecthub.cli:main",
        ],
    },
    install_requires=[
        "pydantic>=2.5",
        "redis>=5.0",
        "pyyaml>=6.0",
        "httpx>=0.27",
        "websockets>=12.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
)
