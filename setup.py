"""Setup configuration for covid-stream."""

from setuptools import find_packages, setup

setup(
    name="covid-stream",
    version="0.1.0",
    description="Reshape wide COVID-19 time series into per-date observations and publish them to Kafka",
    python_requires=">=3.11",
    packages=find_packages(where="src", include=["covidstream*"]),
    package_dir={"": "src"},
    install_requires=[
        "httpx>=0.27.0",
        "pydantic>=2.6.0",
        "pydantic-settings>=2.1.0",
        "aiokafka>=0.10.0",
    ],
    entry_points={
        "console_scripts": [
            "covidstream=covidstream.cli:cli_entry",
        ],
    },
    extras_require={
        "dev": [
            "pytest>=8.0.0",
            "pytest-asyncio>=0.23.0",
            "pytest-mock>=3.12.0",
            "respx>=0.21.0",
        ],
    },
)
