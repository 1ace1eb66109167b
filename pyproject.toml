[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "brig"
version = "0.1.0"
description = "Coordinate ZFS snapshot replication and dataset ownership across servers over SSH"
requires-python = ">=3.10"
keywords = ["zfs", "snapshot", "replication", "backup", "ssh"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Environment :: Web Environment",
    "Framework :: Flask",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Archiving :: Backup",
    "Topic :: System :: Filesystems",
]
dependencies = [
    "paramiko",
    "flask",
    "requests",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
brig = "brig.client:main"
brig-server = "brig.server:main"

[tool.hatch.build.targets.wheel]
packages = ["brig"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
