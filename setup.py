"""
YDHistory setuptools build script.

Usage:
    # Development (editable install, links to source):
    pip install -e ".[test]"

    # Run the tests:
    python -m pytest tests
"""

from setuptools import setup, find_namespace_packages

APP_NAME = "yd-history"

setup(
    name=APP_NAME,
    version="1.0.0",
    description="Embedded SQLite store for a video-download manager's history",
    packages=find_namespace_packages(include=["ydhistory", "ydhistory.*"]),
    py_modules=["main"],
    install_requires=[],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    python_requires=">=3.10",
    entry_points={
        "console_scripts": [
            "yd-history-check=main:main",
        ],
    },
)
