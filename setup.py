#!/usr/bin/env python3
"""
Setup script for Congregation Hub.

Church management API: people, districts, visitor pipeline, events and broadcast messaging.
"""

import os

from setuptools import find_packages, setup

# Read the contents of README file
this_directory = os.path.abspath(os.path.dirname(__file__))
with open(os.path.join(this_directory, "README.md"), encoding="utf-8") as f:
    long_description = f.read()


# Read requirements
def read_requirements(filename):
    """Read requirements from file."""
    requirements_path = os.path.join(this_directory, filename)
    with open(requirements_path, encoding="utf-8") as f:
        return [line.strip() for line in f if line.strip() and not line.startswith("#")]


# Version management - use centralized version
def get_version():
    """Get version from centralized version file."""
    version_file = os.path.join(this_directory, "src", "congregation_hub", "__version__.py")

    version_vars = {}
    with open(version_file, encoding="utf-8") as f:
        exec(f.read(), version_vars)

    return version_vars.get("__version__", "0.1.0")


install_requires = read_requirements("requirements.txt")

extras_require = {
    "dev": [
        "pytest>=7.0.0",
        "pytest-cov>=4.0.0",
        "pytest-asyncio>=0.21.0",
        "httpx>=0.24.0",
        "black>=23.0.0",
        "flake8>=6.0.0",
        "isort>=5.12.0",
    ],
}

setup(
    name="congregation-hub",
    version=get_version(),
    description="Church management API: people, districts, visitor pipeline, events and broadcast messaging",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    include_package_data=True,
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Religion",
        "Topic :: Religion",
        "Topic :: Communications :: Email",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3 :: Only",
        "Operating System :: OS Independent",
        "Environment :: Web Environment",
        "Framework :: AsyncIO",
        "Framework :: FastAPI",
    ],
    python_requires=">=3.11",
    install_requires=install_requires,
    extras_require=extras_require,
    entry_points={
        "console_scripts": [
            "congregation-hub=congregation_hub.cli:main",
            "ch=congregation_hub.cli:main",
        ],
    },
    zip_safe=False,
    license="MIT",
    platforms=["any"],
)
