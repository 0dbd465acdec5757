from setuptools import setup, find_packages

setup(
    name="xray-sdk",
    version="0.2.0",
    description="X-Ray: Decision transparency traces for non-deterministic pipelines",
    author="X-Ray Team",
    packages=find_packages(include=["xray_sdk", "xray_sdk.*"]),
    install_requires=[
        "pydantic>=2.0",
        "sqlalchemy[asyncio]>=2.0",
        "aiosqlite>=0.19",
        "httpx>=0.25.0",
        "python-dotenv>=1.0",
        "structlog>=23.1",
    ],
    extras_require={
        "postgres": ["asyncpg>=0.28"],
        "test": ["pytest>=7.0"],
    },
    python_requires=">=3.9",
)
