[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "candlebench"
version = "0.1.0"
description = "Inspect, tokenize, embed and benchmark local ML model files from the command line."
requires-python = ">=3.10"
keywords = ["safetensors", "gguf", "embeddings", "bert", "benchmark", "tokenizer", "numpy"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Environment :: Console :: Curses",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Artificial Intelligence",
    "Topic :: Utilities",
]
dependencies = [
    "numpy",
    "requests",
    "tabulate",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
candlebench = "candlebench.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["candlebench"]

[tool.pytest.ini_options]
addopts = "-ra"
