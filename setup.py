from __future__ import annotations

import os
import sys

from setuptools import find_packages, setup

dependencies = [
    "aiohttp>=3.9.2",  # HTTP client for the providers and HTTP server for the estimates endpoint
    "click>=8.1.3",  # For the CLI
    "colorlog>=6.8.2",  # Adds color to logs
    "concurrent-log-handler>=0.9.25",  # Concurrently log and rotate logs
    "filelock>=3.13.1",  # For reading and writing config multiprocess and multithread safely  (non-reentrant locks)
    "importlib-resources>=6.1.1",  # Reads the packaged initial config
    "PyYAML>=6.0.1",  # Used for config file format
    "sortedcontainers>=2.4.0",  # Fee curves iterate in ascending confirmation target order
    "typing-extensions>=4.10.0",  # typing backports like Protocol and final
]

test_dependencies = [
    "anyio>=4.2.0",  # pytest plugin driving the async tests
    "pytest>=8.0.2",
    "pytest-mock>=3.12.0",
]

dev_dependencies = [
    *test_dependencies,
    "build>=1.0.3",
    "coverage>=7.4.1",
    "pytest-cov>=4.1.0",
    "pytest-xdist>=3.5.0",
    "isort>=5.13.2",
    "flake8>=7.0.0",
    "mypy>=1.8.0",
    "black>=23.12.1",
    "types-pyyaml>=6.0.12.12",
    "types-setuptools>=69.1.0.20240217",
]

kwargs = dict(
    name="bitcoin-blended-fee-estimator",
    version="1.0.0",
    description="Blends bitcoin fee estimates from several sources into one monotonic fee curve.",
    license="MIT",
    python_requires=">=3.9, <4",
    keywords="bitcoin fee estimates lightning mempool",
    install_requires=dependencies,
    extras_require=dict(
        dev=dev_dependencies,
        test=test_dependencies,
    ),
    packages=find_packages(include=["blended_fee", "blended_fee.*"]),
    entry_points={
        "console_scripts": [
            "blended_fee = blended_fee.cmds.blended_fee:main",
            "blended_fee_server = blended_fee.server.fee_estimator_server:main",
        ]
    },
    package_data={
        "blended_fee.util": ["initial-*.yaml"],
    },
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    zip_safe=False,
)

if "setup_file" in sys.modules:
    # include dev deps in regular deps when run in snyk
    dependencies.extend(dev_dependencies)

if len(os.environ.get("BLENDED_FEE_SKIP_SETUP", "")) < 1:
    setup(**kwargs)  # type: ignore
