from pathlib import Path

from setuptools import find_packages
from setuptools import setup


HERE = Path(__file__).resolve().parent


def get_long_description():
    readme = HERE / "README.md"
    if readme.exists():
        return readme.read_text(encoding="utf-8")
    return ""


setup(
    name="ddtesting",
    version="0.1.0",
    description="Datadog CI test visibility for Python test suites",
    long_description=get_long_description(),
    long_description_content_type="text/markdown",
    license="BSD-3-Clause",
    packages=find_packages(exclude=["tests*"]),
    python_requires=">=3.8",
    install_requires=[
        "ddtrace>=3.0.0",
        "envier~=0.6",
    ],
    extras_require={
        "test": [
            "pytest>=7",
            "mock",
            "hypothesis",
        ],
    },
    entry_points={
        "pytest11": [
            "ddtesting = ddtesting.contrib.pytest.plugin",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Framework :: Pytest",
    ],
    zip_safe=False,
)
