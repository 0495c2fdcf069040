"""Setup script for the icalfeed calendar feed server."""

from pathlib import Path

from setuptools import find_packages, setup

# Read the README file
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

# Read requirements, separating test dependencies
requirements_file = Path(__file__).parent / "requirements.txt"
requirements = []
test_requirements = []

if requirements_file.exists():
    for line in requirements_file.read_text().splitlines():
        line = line.strip()
        # Skip empty lines and comments
        if not line or line.startswith("#"):
            continue
        if "pytest" in line:
            test_requirements.append(line)
        else:
            requirements.append(line)

setup(
    name="icalfeed",
    version="0.1.0",
    description="Merge iCalendar feeds into a windowed, optionally anonymized JSON event stream",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="icalfeed contributors",
    # Package configuration
    packages=find_packages(exclude=["tests*", "docs*"]),
    include_package_data=True,
    # Dependencies
    install_requires=requirements,
    extras_require={
        "test": test_requirements,
        "dev": test_requirements
        + [
            "black>=23.0.0",
            "isort>=5.12.0",
            "mypy>=1.0.0",
        ],
    },
    python_requires=">=3.11",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Web Environment",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Operating System :: MacOS",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Office/Business :: Scheduling",
        "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
        "Framework :: AsyncIO",
    ],
    keywords="calendar ics icalendar rrule vtimezone feed aiohttp async",
    # Entry points
    entry_points={
        "console_scripts": [
            "icalfeed=icalfeed.__main__:main",
        ],
    },
    data_files=[
        ("share/icalfeed", ["config-default.yml"]),
    ],
    zip_safe=False,
)
