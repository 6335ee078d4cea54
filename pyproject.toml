[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mediasoup"
version = "0.1.0"
description = "Control-side library for a mediasoup media worker: message channel, event emitter, consumers, data producers and consumers, and H264 profile negotiation."
requires-python = ">=3.10"
dependencies = []
keywords = ["webrtc", "sfu", "rtp", "h264", "sctp", "conferencing", "netstring"]
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
    "Topic :: Communications :: Conferencing",
    "Topic :: Multimedia :: Video",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["mediasoup"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
