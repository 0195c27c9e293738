from setuptools import find_packages, setup

setup(
    name="fleet-builder",
    version="0.1.0",
    packages=find_packages(
        include=[
            "fleet_common",
            "fleet_common.*",
            "fleet_controller",
            "fleet_controller.*",
            "fleet_server",
            "fleet_server.*",
            "fleet_client",
            "fleet_client.*",
        ]
    ),
    install_requires=[
        "requests>=2.31.0",
        "fastapi>=0.104.0",
        "pydantic>=2.0.0",
        "uvicorn>=0.24.0",
        "click>=8.1.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-xdist>=3.3.0",
            "httpx>=0.25.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "fleet=fleet_client.cli:main",
            "fleet-controller=fleet_controller.__main__:main",
            "fleet-server=fleet_server.app:main",
        ],
    },
    python_requires=">=3.11",
)
