[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "jsinspector"
version = "0.1.0"
description = "Chrome DevTools Protocol debugging back end for embedded JavaScript engines"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "debugger",
    "chrome-devtools-protocol",
    "cdp",
    "websocket",
    "javascript",
    "breakpoints",
]
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
    "Topic :: Software Development :: Debuggers",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["jsinspector"]

[tool.pytest.ini_options]
addopts = "-ra"
