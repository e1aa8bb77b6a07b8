[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "bfeapi"
version = "0.1.0"
description = "Domain model for managing BFE load-balancer configuration: products, pools, clusters, routes, domains and certificates"
requires-python = ">=3.10"
keywords = ["bfe", "load-balancer", "configuration", "routing", "gslb"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]
dependencies = [
    "cryptography",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["bfeapi"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
