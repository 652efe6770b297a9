import io
import os

import setuptools

ROOT_DIR = os.path.dirname(os.path.abspath(__file__))


def find_version(*filepath):
    # Extract version information from filepath
    with open(os.path.join(ROOT_DIR, *filepath)) as fp:
        for line in fp:
            if line.startswith("__version__"):
                return line.split("=")[1].strip().strip('"')
    raise RuntimeError("Unable to find version string.")


# These are the main dependencies for users of promboard. This list
# should be carefully curated.
install_requires = [
    "aiohttp >= 3.7",
    "click >= 7.0",
    "filelock",
    "pydantic >= 2.0",
    "pyyaml",
]

extras = {
    "test": [
        "pytest",
        "pytest-asyncio",
    ],
}

setuptools.setup(
    name="promboard",
    version=find_version("promboard", "__init__.py"),
    description=(
        "Prometheus dashboard panels: instance-scoped range queries, "
        "series naming and persisted panel state."
    ),
    long_description=io.open(
        os.path.join(ROOT_DIR, "README.md"), "r", encoding="utf-8"
    ).read(),
    long_description_content_type="text/markdown",
    keywords="prometheus promql dashboard metrics monitoring",
    classifiers=[
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.8",
    packages=setuptools.find_packages(include=["promboard", "promboard.*"]),
    package_data={"promboard": ["modules/panel_state/panel_templates.yaml"]},
    install_requires=install_requires,
    extras_require=extras,
    entry_points={
        "console_scripts": [
            "promboard=promboard.scripts.scripts:main",
        ]
    },
    include_package_data=True,
    zip_safe=False,
)
