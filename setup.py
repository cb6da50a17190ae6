"""Package setup for pricepilot."""

from setuptools import setup, find_packages

setup(
    name="pricepilot",
    version="0.4.0",
    description="Billing model classifier and Stripe product/price/meter reconciler",
    packages=find_packages(include=["pricepilot", "pricepilot.*"]),
    python_requires=">=3.9",
    install_requires=[
        "typer>=0.9.0",
        "rich>=13.0.0",
        "fastapi>=0.100.0",
        "uvicorn>=0.23.0",
        "pydantic>=2.0.0",
        "stripe>=9.6.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": ["pytest>=7.0.0", "httpx>=0.24.0"],
    },
    entry_points={
        "console_scripts": [
            "pricepilot=pricepilot.cli:app",
        ],
    },
)
