[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "antpm"
version = "0.1.0"
description = "ANT serial protocol helpers: message framing, burst reassembly, logging and configuration utilities"
requires-python = ">=3.10"
dependencies = []
keywords = ["ant", "ant-fs", "serial", "framing", "fitness"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["antpm"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
