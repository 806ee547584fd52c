from setuptools import setup, find_namespace_packages

setup(
    name="storycraft-billing",
    version="0.1.0",
    packages=find_namespace_packages(where="src", include=["storycraft*"]),
    package_dir={"": "src"},
    package_data={"storycraft.core": ["plans.yaml"]},
    python_requires=">=3.10",
    install_requires=[
        "fastapi",
        "uvicorn",
        "sqlalchemy[asyncio]>=2.0",
        "asyncpg",
        "aiosqlite",
        "pydantic>=2",
        "pydantic-settings",
        "python-dotenv",
        "supabase",
        "stripe>=8.0",
        "pyyaml",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
            "httpx",
        ],
    },
)
