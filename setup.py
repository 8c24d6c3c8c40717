from setuptools import setup, find_packages

setup(
    name="persona-memory",
    version="0.1.0",
    description="Scored long-term memory and retrieval for persona conversations",
    author="Persona Memory Developer",
    python_requires=">=3.11",
    packages=find_packages(include=["persona_memory", "persona_memory.*"]),
    install_requires=[
        "aiofiles>=23.2.0",
        "aiosqlite>=0.19.0",
        "pydantic>=2.5.0",
        "chromadb>=0.5.0",
        "httpx>=0.25.0",
        "numpy>=1.24.0",
        "python-dotenv>=1.0.0",
        "tiktoken>=0.5.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
        ]
    },
)
