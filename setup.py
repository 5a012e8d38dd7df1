"""
vttscribe: setuptools build script.

Usage:
    # Development (editable install):
    pip install -e .[test]

    # Run:
    vttscribe
    vttscribe convert [--force] [VIDEO_ID ...]
"""

from setuptools import setup

APP_NAME = "vttscribe"

setup(
    name=APP_NAME,
    version="1.0.0",
    description="Rebuild readable lecture transcripts from captured WebVTT subtitle segments",
    packages=[
        "vttscribe",
        "vttscribe.core",
    ],
    py_modules=["main"],
    install_requires=[
        "requests>=2.28.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    python_requires=">=3.10",
    entry_points={
        "console_scripts": [
            "vttscribe=main:main",
        ],
    },
)
