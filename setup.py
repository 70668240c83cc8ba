from setuptools import setup, find_packages


def read_requirements():
    try:
        with open("requirements.txt", "r") as f:
            return [line.strip() for line in f if line.strip() and not line.startswith("#")]
    except FileNotFoundError:
        return [
            "fastapi>=0.110.0",
            "sqlalchemy[asyncio]>=2.0.0",
            "httpx>=0.27.0",
            "redis>=5.0.0",
        ]


setup(
    name="lock-userinfo-api",
    version="1.0.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    py_modules=[
        "api_server",
        "collaborators",
        "config",
        "errors",
        "lock_reasons",
        "user_fields",
        "user_info",
    ],
    python_requires=">=3.9",
    install_requires=read_requirements(),
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.23.0",
            "aiosqlite>=0.19.0",
        ],
    },
)
