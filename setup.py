"""Setup file for development installation."""

from setuptools import setup, find_namespace_packages

setup(
    name="aley-chat",
    version="0.1.0",
    packages=find_namespace_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.10",
    install_requires=[
        "fastapi>=0.110",
        "uvicorn>=0.29",
        "pydantic>=2.5",
        "structlog>=24.1",
        "google-generativeai>=0.8",
        "prometheus-client>=0.20",
        "opentelemetry-instrumentation-fastapi>=0.45b0",
        "python-jose[cryptography]>=3.3",
        "bcrypt>=4.1",
        "pymongo>=4.10",
        "python-dotenv>=1.0",
        "httpx>=0.27",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "aley-chat=aley_chat.api.app:main",
        ],
    },
)
