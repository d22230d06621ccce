import setuptools
from setuptools import find_packages

with open("readme.md", "r") as fh:
    long_description = fh.read()


vars2find = ["__author__", "__version__"]
vars2readme = {}
with open("./urms/__init__.py") as f:
    for line in f.readlines():
        for v in vars2find:
            if line.startswith(v):
                line = line.replace(" ", "").replace('"', "").replace("'", "").strip()
                vars2readme[v] = line.split("=")[1]

core_deps = [
    "pydantic>=2.5",
    "pydantic-settings>=2.0",
    "tenacity",
    "pymongo>=4.0",
    "motor>=3.0",
    "redis[hiredis]>=5.0.0",
    "fastapi>=0.100.0",
]

setuptools.setup(
    name="urms-backup",
    version=vars2readme["__version__"],
    author=vars2readme["__author__"],
    description="Backup and restore orchestrator for the URMS records database",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["urms", "urms.*"]),
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
    install_requires=core_deps,
    extras_require={
        "api": [
            "uvicorn[standard]",
        ],
        "test": [
            "pytest",
            "pytest-asyncio",
            "httpx",
        ],
        "all": [
            "uvicorn[standard]",
        ],
    },
)
