[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "canrosnode"
version = "0.1.0"
description = "Subscription queues, topic options and master XML-RPC handling for CAN-bridged ROS nodes"
requires-python = ">=3.10"
dependencies = []
keywords = ["ros", "can", "xmlrpc", "publish-subscribe", "robotics"]
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
    "Topic :: System :: Distributed Computing",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["canrosnode"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
