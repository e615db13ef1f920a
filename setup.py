# setup.py
from setuptools import setup, find_packages

setup(
    name="link_scout",
    version="0.1.0",
    description="Асинхронный аудит сайта на битые ссылки и ресурсы LinkScout",
    packages=find_packages(exclude=("tests", "tests.*")),  # найдёт link_scout и link_scout.*
    install_requires=[
        "aiohttp>=3.11",
        "beautifulsoup4>=4.12",
        "click>=8.2",
        "playwright>=1.40",
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
            "link-scout=link_scout.cli:cli",
        ],
    },
    python_requires=">=3.11",
)
