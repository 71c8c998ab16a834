"""Setup configuration for service-discovery."""

from setuptools import setup, find_packages

setup(
    name="service-discovery",
    version="0.1.0",
    description="Service discovery over a lease registry, UDP broadcast or UDP multicast",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    install_requires=[
        "requests>=2.31.0",
        "pyyaml>=6.0",
        "click>=8.1.0",
        "fastapi>=0.110.0",
        "pydantic>=2.5.0",
        "uvicorn>=0.27.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "httpx>=0.26.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "service-discovery=service_discovery.cli:main",
        ],
    },
)
