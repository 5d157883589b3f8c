#!/usr/bin/env python3
"""
Setup script for roomlink
"""

from setuptools import setup, find_packages

setup(
    name="roomlink",
    version="0.1.0",
    description="Join bots into live multiplayer game rooms over the matchmaker and websocket transports",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "websockets>=15.0",
        "httpx>=0.28.1",
        "typer>=0.15.0",
        "rich>=13.9.2",
        "PyYAML>=6.0.1",
    ],
    extras_require={
        "test": [
            "pytest>=8.4.2",
            "pytest-asyncio>=1.2.0",
        ],
    },
    python_requires=">=3.10",
    entry_points={
        'console_scripts': [
            'roomlink=roomlink.cli:main',
        ],
    },
)
