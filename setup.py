# setup.py
from setuptools import setup, find_packages

setup(
    name="spaider",
    version="0.1.0",
    description="Harvest a website subtree as deduplicated Markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "aiohttp>=3.9",
        "beautifulsoup4>=4.12",
        "click>=8.1",
        "markdownify>=0.11.6",
        "pydantic>=2.5",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "spaider=spaider.cli:cli",
        ],
    },
    python_requires=">=3.11",
)
