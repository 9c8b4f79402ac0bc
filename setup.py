from setuptools import setup, find_namespace_packages

setup(
    name="cloud-atlas",
    version="0.1.0",
    description="Cloud Atlas — chat-driven explorer for Cartography AWS infrastructure graphs",
    author="Cloud Atlas",
    python_requires=">=3.10",
    packages=find_namespace_packages(include=["atlas", "atlas.*", "cloudgraph", "cloudgraph.*"]),
    py_modules=["cloud_atlas"],
    install_requires=[
        "neo4j>=5.14",
        "anthropic>=0.39.0",
        "pyyaml>=6.0",
        "requests>=2.31.0",
        "fastapi>=0.110",
        "uvicorn>=0.29",
    ],
    extras_require={
        "dev": ["pytest>=7.0", "httpx>=0.27"],
    },
    entry_points={
        "console_scripts": [
            "cloud-atlas=cloud_atlas:main",
        ],
    },
)
