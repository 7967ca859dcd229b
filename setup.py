# Copyright 2018 Datawire. All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License

import os

from setuptools import find_packages, setup

Version = "0.0.0-dev"


def read_requirements(filename):
    with open(os.path.join(os.path.dirname(os.path.abspath(__file__)), filename), "r") as f:
        return [line.strip() for line in f.read().split("\n") if line.strip()]


requirements = read_requirements("requirements.txt")
test_requirements = read_requirements("requirements-dev.txt")

setup(
    name="gateway-auto-listener",
    version=Version,
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.8",
    install_requires=requirements,
    extras_require={
        "test": test_requirements,
    },
    entry_points={
        "console_scripts": [
            "gateway-auto-listener=gateway_auto_listener.cli:main",
        ]
    },
    keywords=["kubernetes", "gateway-api", "cert-manager", "controller"],
    classifiers=[],
)
