"""
Setup script for browser-pdf-service.

Allows development installation with `pip install -e .`
"""

from setuptools import setup, find_packages

setup(
    name="browser-pdf-service",
    version="0.1.0",
    packages=find_packages(include=["browser_pdf", "browser_pdf.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi",
        "uvicorn",
        "pydantic>=2",
        "pydantic-settings>=2",
        "playwright",
        "httpx",
        "tenacity",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
    entry_points={
        "console_scripts": [
            "browser-pdf-service=browser_pdf.__main__:main",
        ],
    },
)
