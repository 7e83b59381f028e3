[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mdbcashless"
version = "0.1.0"
description = "Simulated MDB cashless payment reader with a serial uplink command console"
requires-python = ">=3.10"
dependencies = []
keywords = ["mdb", "vending", "cashless", "point-of-sale", "simulation"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business :: Financial :: Point-Of-Sale",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
mdbcashless = "mdbcashless.app:main"

[tool.hatch.build.targets.wheel]
packages = ["mdbcashless"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
