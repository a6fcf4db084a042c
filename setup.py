"""
Stitch Client Python SDK - Package Setup

Setup configuration for PyPI distribution.
"""

from setuptools import setup, find_packages
import os

# Read the README for long description
readme_path = os.path.join(os.path.dirname(__file__), "README.md")
long_description = ""
if os.path.exists(readme_path):
    with open(readme_path, "r", encoding="utf-8") as f:
        long_description = f.read()

version: dict = {}
with open(os.path.join(os.path.dirname(__file__), "stitch_client", "version.py"), encoding="utf-8") as f:
    exec(f.read(), version)

setup(
    name="stitch-client",
    version=version["__version__"],
    description="Python SDK for the Stitch backend-as-a-service API",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["stitch_client", "stitch_client.*"]),
    python_requires=">=3.10",
    install_requires=[
        "httpx>=0.24.0",
        "pymongo>=4.0",
        "PyJWT>=2.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "hypothesis>=6.0.0",
            "respx>=0.20.0",
            "mypy>=1.0.0",
            "black>=23.0.0",
            "isort>=5.0.0",
            "flake8>=6.0.0",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Internet :: WWW/HTTP",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Typing :: Typed",
    ],
    keywords="stitch, sdk, api, baas, mongodb, extended-json",
    package_data={
        "stitch_client": ["py.typed"],
    },
    include_package_data=True,
    zip_safe=False,
)
